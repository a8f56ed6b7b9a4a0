"""
规则服务异常定义

- RuleValidationError: 规则结构/正则/必填字段错误，直接返回给调用方，从不重试
- RuleNotFoundError: 规则ID不存在（存储层以 None/False 表示，HTTP 客户端以此异常表示）
- StoreUnavailableError: 主存储不可达，由同步协调器转入回退缓存
- FallbackWriteError: 回退缓存写入失败
- SyncFailedError: 主存储和回退缓存都失败，用户操作整体失败

批量/导入的部分失败不是异常，结果中通过 successCount/failureCount/failedRules 完整报告
"""
from typing import Optional


class SanitizationError(Exception):
    """脱敏规则服务基础异常"""


class RuleValidationError(SanitizationError):
    """规则校验失败"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def to_dict(self):
        return {"error": self.message, "field": self.field}


class RuleNotFoundError(SanitizationError):
    """规则不存在"""

    def __init__(self, rule_id: Optional[str] = None):
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id}" if rule_id else "Rule not found")


class StoreUnavailableError(SanitizationError):
    """主存储不可用（网络错误、超时、非2xx响应）"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class FallbackWriteError(SanitizationError):
    """回退缓存写入失败"""


class SyncFailedError(SanitizationError):
    """主存储与回退缓存均写入失败"""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed on both primary store and fallback cache: {cause}")
