"""
规则导入导出API路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from ..services.dto import ImportRulesRequest, RuleFilters
from ..services.policy_store import PolicyStore, get_policy_store
from ..utils.logger import get_logger
from .common import envelope, invalid_query, to_jsonable

logger = get_logger(__name__)
router = APIRouter(tags=["export"])


@router.get("/api/export/rules", status_code=status.HTTP_200_OK)
async def export_rules(store: PolicyStore = Depends(get_policy_store)):
    """导出全部规则"""
    document = store.export_rules()
    logger.info(f"规则导出完成: count={document.total_rules}")
    return to_jsonable(document)


@router.post("/api/import/rules", status_code=status.HTTP_200_OK)
async def import_rules(
    request: ImportRulesRequest,
    store: PolicyStore = Depends(get_policy_store),
):
    """
    导入规则

    单条规则失败只记录在 errors 中；replaceExisting=true 时先清空现有规则
    """
    try:
        logger.info(f"收到导入规则请求: count={len(request.rules)}, replace={request.replace_existing}")
        result = store.import_rules(request.rules, request.replace_existing)
        return envelope(result, result.message)
    except Exception as e:
        logger.error(f"导入规则失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"导入规则失败: {str(e)}"
        )


@router.get("/api/sanitization/rules", status_code=status.HTTP_200_OK)
async def get_sanitization_rules(
    enabled: Optional[bool] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    store: PolicyStore = Depends(get_policy_store),
):
    """
    分页获取规范化规则（供执行端拉取）

    Args:
        enabled: 按启用状态过滤
        category: 按分类过滤
        severity: 按敏感级别过滤（大小写均可）
        limit: 每页数量，默认返回 offset 之后的全部规则
        offset: 偏移量
    """
    try:
        filters = RuleFilters(enabled=enabled, category=category, sensitivity=severity)
    except ValidationError as e:
        raise invalid_query(e)

    rules = store.list_rules(filters)
    total = len(rules)
    page_size = limit or total
    return envelope({
        "rules": rules[offset:offset + page_size],
        "pagination": {
            "total": total,
            "offset": offset,
            "limit": page_size,
            "hasMore": offset + page_size < total,
        },
    })


@router.get("/rules.json", status_code=status.HTTP_200_OK)
async def get_rules_json(store: PolicyStore = Depends(get_policy_store)):
    """规范化规则的扁平数组"""
    return to_jsonable(store.list_rules())
