"""
脱敏动作执行

apply 是纯函数：对任意长度（包括空串）的输入都返回确定的结果，不抛异常
"""
import hashlib
from typing import Any

from .dto import (
    EncryptAction,
    HashAction,
    MaskAction,
    MaskParams,
    RemoveAction,
    ReplaceAction,
)
from .encryption_service import EncryptionService
from ..utils.logger import get_logger

logger = get_logger(__name__)


def mask_value(value: str, params: MaskParams) -> str:
    """
    保留前 prefix 位和后 suffix 位，中间替换为掩码字符

    prefix + suffix 超过长度时整体掩码；keepDomain 时只处理 @ 之前的部分
    """
    if params.keep_domain and "@" in value:
        at = value.index("@")
        return _mask_segment(value[:at], params) + value[at:]
    return _mask_segment(value, params)


def _mask_segment(value: str, params: MaskParams) -> str:
    length = len(value)
    if params.prefix + params.suffix > length:
        return params.mask_char * length
    middle = length - params.prefix - params.suffix
    return value[:params.prefix] + params.mask_char * middle + value[length - params.suffix:]


def hash_value(value: str, algorithm: str, salt: str) -> str:
    """salt + value 的十六进制摘要"""
    return hashlib.new(algorithm, (salt + value).encode("utf-8")).hexdigest()


def apply(action, value: Any) -> str:
    """
    对命中的值执行脱敏动作

    Args:
        action: MaskAction / HashAction / EncryptAction / ReplaceAction / RemoveAction
        value: 原始值（非字符串会先转成字符串，None 视为空串）

    Returns:
        脱敏后的字符串；remove 返回空串，由调用方删除字段
    """
    text = "" if value is None else str(value)

    if isinstance(action, MaskAction):
        return mask_value(text, action.params)
    if isinstance(action, HashAction):
        return hash_value(text, action.params.type, action.params.salt)
    if isinstance(action, EncryptAction):
        return EncryptionService(action.params.key, action.params.iv).encrypt(text)
    if isinstance(action, ReplaceAction):
        return action.params.replacement
    if isinstance(action, RemoveAction):
        return ""

    logger.warning(f"Unknown action algorithm: {getattr(action, 'algorithm', action)!r}, value removed")
    return ""
