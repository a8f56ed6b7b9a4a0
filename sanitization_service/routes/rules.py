"""
脱敏规则API路由
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from ..services.dto import (
    BatchOperationRequest,
    RuleFilters,
    ToggleRuleRequest,
    ValidateRuleRequest,
)
from ..services.errors import RuleValidationError
from ..services.policy_store import PolicyStore, get_policy_store
from ..services.rule_preview import preview_rule
from ..utils.logger import get_logger
from .common import bad_request, envelope, invalid_query, not_found

logger = get_logger(__name__)
router = APIRouter(prefix="/api/rules", tags=["rules"])


@router.get("", status_code=status.HTTP_200_OK)
async def get_rules(
    enabled: Optional[bool] = None,
    category: Optional[str] = None,
    sensitivity: Optional[str] = None,
    store: PolicyStore = Depends(get_policy_store),
):
    """
    获取规则列表

    Args:
        enabled: 按启用状态过滤
        category: 按分类过滤
        sensitivity: 按敏感级别过滤
    """
    try:
        filters = RuleFilters(enabled=enabled, category=category, sensitivity=sensitivity)
    except ValidationError as e:
        raise invalid_query(e)

    try:
        rules = store.list_rules(filters)
        logger.info(f"返回规则列表: count={len(rules)}")
        return envelope(rules, total=len(rules))
    except Exception as e:
        logger.error(f"获取规则列表失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"获取规则列表失败: {str(e)}"
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_rule(
    payload: Dict[str, Any] = Body(...),
    store: PolicyStore = Depends(get_policy_store),
):
    """
    创建规则

    请求体可以是新格式，也可以是带 pattern/fieldNames/severity 的旧格式
    """
    try:
        logger.info(f"收到创建规则请求: name={payload.get('name')}")
        rule = store.create_rule(payload)
        return envelope(rule, "Rule created successfully")
    except RuleValidationError as e:
        logger.warning(f"创建规则校验失败: {e}")
        raise bad_request(e)
    except Exception as e:
        logger.error(f"创建规则失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"创建规则失败: {str(e)}"
        )


@router.post("/batch", status_code=status.HTTP_200_OK)
async def batch_operation(
    request: BatchOperationRequest,
    store: PolicyStore = Depends(get_policy_store),
):
    """
    批量启用/禁用/删除规则

    部分失败时仍返回 200，失败的规则ID在 failedRules 中列出
    """
    try:
        logger.info(f"收到批量操作请求: operation={request.operation}, count={len(request.rule_ids)}")
        result = store.batch_operation(request.rule_ids, request.operation)
        return envelope(result, result.message)
    except RuleValidationError as e:
        raise bad_request(e)
    except Exception as e:
        logger.error(f"批量操作失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"批量操作失败: {str(e)}"
        )


@router.post("/validate", status_code=status.HTTP_200_OK)
async def validate_rule(request: ValidateRuleRequest):
    """
    校验规则草稿，可选地用 testInput 试运行
    """
    result = preview_rule(request.rule, request.test_input)
    logger.info(f"规则校验完成: valid={result.valid}")
    return envelope(result, result.message)


@router.get("/{rule_id}", status_code=status.HTTP_200_OK)
async def get_rule(rule_id: str, store: PolicyStore = Depends(get_policy_store)):
    """获取单条规则"""
    rule = store.get_rule(rule_id)
    if rule is None:
        raise not_found(rule_id)
    return envelope(rule)


@router.put("/{rule_id}", status_code=status.HTTP_200_OK)
async def update_rule(
    rule_id: str,
    payload: Dict[str, Any] = Body(...),
    store: PolicyStore = Depends(get_policy_store),
):
    """
    整体替换规则（最后写入者生效）
    """
    try:
        logger.info(f"收到更新规则请求: id={rule_id}")
        rule = store.update_rule(rule_id, payload)
        if rule is None:
            raise not_found(rule_id)
        return envelope(rule, "Rule updated successfully")
    except HTTPException:
        raise
    except RuleValidationError as e:
        logger.warning(f"更新规则校验失败: id={rule_id}, {e}")
        raise bad_request(e)
    except Exception as e:
        logger.error(f"更新规则失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"更新规则失败: {str(e)}"
        )


@router.post("/{rule_id}/toggle", status_code=status.HTTP_200_OK)
async def toggle_rule(
    rule_id: str,
    request: ToggleRuleRequest,
    store: PolicyStore = Depends(get_policy_store),
):
    """切换单条规则的启用状态"""
    rule = store.toggle_rule(rule_id, request.enabled)
    if rule is None:
        raise not_found(rule_id)
    return envelope(rule, f"Rule {'enabled' if request.enabled else 'disabled'} successfully")


@router.delete("/{rule_id}", status_code=status.HTTP_200_OK)
async def delete_rule(rule_id: str, store: PolicyStore = Depends(get_policy_store)):
    """删除规则"""
    try:
        logger.info(f"收到删除规则请求: id={rule_id}")
        if not store.delete_rule(rule_id):
            raise not_found(rule_id)
        return envelope(None, "Rule deleted successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"删除规则失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"删除规则失败: {str(e)}"
        )
