"""
数据库初始化和连接管理
"""
import os
from pathlib import Path
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession
from sqlalchemy.pool import QueuePool
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from .models.base import Base
from .models import SanitizationRule, SanitizationConfig  # noqa: F401  注册表结构
from .utils.logger import get_logger

logger = get_logger(__name__)


class Database:
    """数据库管理类"""

    def __init__(self, db_url: Optional[str] = None):
        """
        初始化数据库连接

        Args:
            db_url: 数据库URL，如果为None则从环境变量读取
        """
        if db_url is None:
            db_url = os.getenv("SANITIZATION_DB_URL")

        if db_url is None:
            # 项目根目录下的 data/sanitization.db
            project_root = Path(__file__).resolve().parent.parent
            default_db_path = project_root / "data" / "sanitization.db"

            db_path = os.getenv("CONFIG_DB_PATH", str(default_db_path))
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
            db_url = f"sqlite:///{db_path}"

        self.db_url = db_url

        pool_config = {
            "poolclass": QueuePool,
            "pool_size": int(os.getenv("DB_POOL_MAX", "10")),
            "max_overflow": 20,
            "pool_timeout": int(os.getenv("DB_CONNECTION_TIMEOUT", "5")),
            "pool_recycle": 3600,  # 1小时后回收连接，避免连接过期
            "pool_pre_ping": True,  # 使用前检查连接是否有效
            "echo": False,
        }

        # SQLite特殊配置
        if db_url.startswith("sqlite"):
            pool_config["connect_args"] = {"check_same_thread": False}

        self.engine = create_engine(db_url, **pool_config)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False  # 提交后不过期对象，减少查询
        )

    def create_tables(self):
        """创建所有表"""
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        """删除所有表（谨慎使用）"""
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[SQLAlchemySession, None, None]:
        """
        获取数据库会话的上下文管理器

        一个会话即一个事务：正常退出时提交，异常时回滚

        Yields:
            SQLAlchemy会话对象
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_health(self) -> Dict[str, Any]:
        """
        检查数据库连接健康状态

        Returns:
            包含 status 的字典，失败时附带 error
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            pool = self.engine.pool
            return {
                "status": "healthy",
                "dialect": self.engine.dialect.name,
                "checked_out": pool.checkedout() if hasattr(pool, "checkedout") else None,
            }
        except Exception as e:
            logger.error(f"数据库健康检查失败: {e}")
            return {"status": "unhealthy", "error": str(e)}

    def dispose(self):
        """关闭连接池"""
        self.engine.dispose()


# 全局数据库实例
_db_instance = None


def get_database() -> Database:
    """获取全局数据库实例"""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance


def init_database():
    """初始化数据库（创建所有表）"""
    db = get_database()
    db.create_tables()
    logger.info("数据库初始化完成")


if __name__ == "__main__":
    # 直接运行此脚本时初始化数据库并写入默认规则
    from .services.policy_store import get_policy_store

    init_database()
    get_policy_store().seed_defaults()
