"""
日志配置模块
提供统一的日志记录功能，支持详细的错误日志记录

注意：全局设置中的 saltValue / encryptionKey 等密钥只能以脱敏形式写入日志
"""
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from pathlib import Path


# 日志中需要脱敏的键（大小写不敏感）
SECRET_KEYS = {
    "saltvalue",
    "encryptionkey",
    "salt",
    "key",
    "iv",
    "password",
}

REDACTED = "***"


class DetailedFormatter(logging.Formatter):
    """详细的日志格式化器，包含额外的上下文信息"""

    def format(self, record: logging.LogRecord) -> str:
        """
        格式化日志记录

        Args:
            record: 日志记录对象

        Returns:
            格式化后的日志字符串
        """
        formatted = super().format(record)

        # 如果有额外的上下文信息，添加到日志中
        if hasattr(record, 'extra_context') and record.extra_context:
            formatted += f"\n上下文信息: {redact_secrets(record.extra_context)}"

        return formatted


def redact_secrets(data: Any) -> Any:
    """
    递归脱敏字典中的密钥字段

    Args:
        data: 任意 JSON 风格的数据

    Returns:
        密钥字段被替换为 *** 的副本
    """
    if isinstance(data, dict):
        return {
            k: (REDACTED if str(k).lower() in SECRET_KEYS and v not in (None, "") else redact_secrets(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_secrets(item) for item in data]
    return data


def setup_logger(
    name: str = "sanitization_config_service",
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    设置日志记录器

    Args:
        name: 日志记录器名称
        log_level: 日志级别（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_file: 日志文件路径，如果为None则从环境变量读取；为空字符串时不写文件
        console_output: 是否输出到控制台

    Returns:
        配置好的日志记录器
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    if log_file is None:
        log_file = os.getenv("LOG_FILE", "./logs/app.log")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # 清除已有的处理器（避免重复添加）
    logger.handlers.clear()

    log_format = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            Path(log_dir).mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(DetailedFormatter(log_format, date_format))
        logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, log_level.upper()))
        console_handler.setFormatter(DetailedFormatter(log_format, date_format))
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str = "sanitization_config_service") -> logging.Logger:
    """
    获取日志记录器

    Args:
        name: 日志记录器名称

    Returns:
        日志记录器实例
    """
    logger = logging.getLogger(name)

    # 如果日志记录器还没有处理器，进行初始化
    if not logger.handlers:
        setup_logger(name)

    return logger


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    error: Exception,
    context: Optional[Dict[str, Any]] = None
):
    """
    记录带有详细上下文的错误日志

    Args:
        logger: 日志记录器
        message: 错误消息
        error: 异常对象
        context: 额外的上下文信息（密钥字段会被脱敏）
    """
    safe_context = redact_secrets(context) if context else None

    error_details = {
        "message": message,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if safe_context:
        error_details["context"] = safe_context

    error_details["traceback"] = traceback.format_exc()

    logger.error(
        f"{message}\n详细信息: {error_details}",
        exc_info=True,
        extra={"extra_context": safe_context}
    )


def log_store_error(
    logger: logging.Logger,
    operation: str,
    error: Exception,
    rule_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None
):
    """
    记录规则存储操作错误

    Args:
        logger: 日志记录器
        operation: 操作名称（create/update/delete/batch...）
        error: 异常对象
        rule_id: 规则ID
        payload: 请求数据（密钥会被脱敏）
    """
    context = {
        "operation": operation,
        "rule_id": rule_id,
        "payload": payload,
    }
    log_error_with_context(logger, "规则存储操作失败", error, context)


def log_sync_error(
    logger: logging.Logger,
    operation: str,
    error: Exception,
    endpoint: Optional[str] = None
):
    """
    记录主存储/回退缓存同步错误

    Args:
        logger: 日志记录器
        operation: 同步操作名称
        error: 异常对象
        endpoint: 主存储接口地址
    """
    context = {
        "operation": operation,
        "endpoint": endpoint,
    }
    log_error_with_context(logger, "规则同步失败", error, context)
