"""
脱敏规则配置服务 - 后端主入口
"""
import sys
from pathlib import Path
from contextlib import asynccontextmanager

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
import os

from sanitization_service import __version__
from sanitization_service.database import init_database
from sanitization_service.services.policy_store import get_policy_store
from sanitization_service.utils.logger import setup_logger
from sanitization_service.routes import (
    rules_router,
    config_router,
    health_router,
    export_router,
)

# 加载环境变量
load_dotenv()

# 初始化日志
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 在多进程模式下，每个worker都会执行此代码
    worker_id = os.getpid()
    logger.info(f"Worker {worker_id} 正在启动...")

    try:
        # 初始化数据库，规则表为空时写入默认规则
        init_database()
        get_policy_store().seed_defaults()
        logger.info(f"Worker {worker_id} 数据库初始化成功")
    except Exception as e:
        logger.error(f"Worker {worker_id} 数据库初始化失败: {e}", exc_info=True)
        raise

    logger.info(f"Worker {worker_id} 启动完成")

    yield

    logger.info(f"Worker {worker_id} 正在关闭...")


app = FastAPI(
    title="脱敏规则配置服务 API",
    description="脱敏规则的定义、存储和下发",
    version=__version__,
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """请求体校验失败统一返回 400 {error, field}"""
    first = exc.errors()[0] if exc.errors() else {}
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": first.get("msg", "Invalid request"), "field": loc[-1] if loc else "body"}},
    )


# 注册路由
app.include_router(health_router)
app.include_router(config_router)
app.include_router(rules_router)
app.include_router(export_router)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("FRONTEND_URL", "http://localhost:3000"),
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "脱敏规则配置服务 API", "status": "running"}


if __name__ == "__main__":
    import uvicorn
    host = os.getenv("BACKEND_HOST", "0.0.0.0")
    port = int(os.getenv("BACKEND_PORT", 8001))
    workers = int(os.getenv("BACKEND_WORKERS", 1))
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logger.info(f"启动服务器: {host}:{port}, workers={workers}, log_level={log_level}")

    # 使用 workers 或 reload 时都必须传递导入字符串
    if workers > 1:
        uvicorn.run(
            "sanitization_service.main:app",
            host=host,
            port=port,
            workers=workers,
            log_level=log_level,
            access_log=log_level == "debug"
        )
    else:
        uvicorn.run(
            "sanitization_service.main:app",
            host=host,
            port=port,
            log_level=log_level,
            access_log=log_level == "debug",
            reload=True
        )
