"""
脱敏规则配置服务
"""
__version__ = "1.0.0"
