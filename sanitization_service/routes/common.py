"""
路由公共工具：统一响应信封与异常转换
"""
from typing import Any, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, ValidationError

from ..services.errors import RuleValidationError
from ..utils.datetime_helper import now_millis


def to_jsonable(value: Any) -> Any:
    """把 DTO（或 DTO 列表）转换为 camelCase 的 JSON 兼容对象"""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """
    成功响应信封 {success, data, message, timestamp}

    Args:
        data: 响应数据
        message: 提示信息
        extra: 其它顶层字段（如 total）
    """
    body = {"success": True, "data": to_jsonable(data), "timestamp": now_millis()}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body


def bad_request(error: RuleValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())


def invalid_query(error: ValidationError) -> HTTPException:
    first = error.errors()[0]
    loc = [str(part) for part in first.get("loc", ())]
    field = loc[-1] if loc else "query"
    return bad_request(RuleValidationError(field, first.get("msg", "invalid value")))


def not_found(rule_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "Rule not found", "field": "id", "id": rule_id},
    )
