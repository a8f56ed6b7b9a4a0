"""
数据库模型包
"""
from .base import Base
from .sanitization_rule import SanitizationRule
from .sanitization_config import SanitizationConfig

__all__ = [
    "Base",
    "SanitizationRule",
    "SanitizationConfig",
]
