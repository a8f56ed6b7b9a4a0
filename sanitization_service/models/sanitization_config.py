"""
全局配置模型
"""
from sqlalchemy import Column, String, Text, JSON, DateTime

from .base import Base
from ..utils.datetime_helper import utc_now


class SanitizationConfig(Base):
    """全局配置表（键值存储）"""
    __tablename__ = "sanitization_config"

    config_key = Column(String(100), primary_key=True)
    # 注意：global_settings 中的 saltValue / encryptionKey 以明文保存
    config_value = Column(JSON, nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<SanitizationConfig(config_key={self.config_key})>"
