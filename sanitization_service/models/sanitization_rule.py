"""
脱敏规则模型
"""
from sqlalchemy import Column, String, Text, Boolean, Integer, JSON
from .base import Base, TimestampMixin


class SanitizationRule(Base, TimestampMixin):
    """脱敏规则表"""
    __tablename__ = "sanitization_rules"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False, index=True)
    priority = Column(Integer, default=10, nullable=False)
    category = Column(String(50), nullable=False, index=True)
    sensitivity = Column(String(20), nullable=False, index=True)  # low / medium / high / critical
    condition = Column(JSON, nullable=False)  # {"type": "regex" | "key_keyword", ...}
    action = Column(JSON, nullable=False)  # {"algorithm": ..., "params": {...}}
    include_services = Column(JSON, nullable=True)
    exclude_services = Column(JSON, nullable=True)
    conditions = Column(JSON, nullable=True)  # 辅助应用条件，本层不解释
    created_by = Column(String(100), default="system", nullable=False)
    version = Column(String(20), default="1.0", nullable=False)

    def __repr__(self):
        return f"<SanitizationRule(id={self.id}, name={self.name}, sensitivity={self.sensitivity})>"
