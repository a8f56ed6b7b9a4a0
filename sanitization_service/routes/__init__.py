"""
API路由模块
"""
from .rules import router as rules_router
from .config import router as config_router
from .health import router as health_router
from .export import router as export_router

__all__ = [
    "rules_router",
    "config_router",
    "health_router",
    "export_router",
]
