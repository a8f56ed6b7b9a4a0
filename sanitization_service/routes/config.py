"""
全局配置API路由
"""
from fastapi import APIRouter, Depends, HTTPException, status

from ..services.dto import ConfigUpdateRequest, GlobalSwitchRequest
from ..services.errors import RuleValidationError
from ..services.policy_store import PolicyStore, get_policy_store
from ..utils.datetime_helper import now_millis
from ..utils.logger import get_logger
from .common import bad_request, envelope

logger = get_logger(__name__)
router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("", status_code=status.HTTP_200_OK)
async def get_full_config(store: PolicyStore = Depends(get_policy_store)):
    """
    获取完整配置（全局开关、全部规则、全局设置）
    """
    try:
        config = store.get_full_config()
        logger.info(f"返回完整配置: enabled={config.enabled}, rules={len(config.rules)}")
        return envelope(config)
    except Exception as e:
        logger.error(f"获取配置失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"获取配置失败: {str(e)}"
        )


@router.get("/global", status_code=status.HTTP_200_OK)
async def get_global_configs(store: PolicyStore = Depends(get_policy_store)):
    """获取全部键值配置"""
    return envelope(store.get_all_configs())


@router.post("/global", status_code=status.HTTP_200_OK)
async def update_global_config(
    request: ConfigUpdateRequest,
    store: PolicyStore = Depends(get_policy_store),
):
    """
    写入一个配置项

    注意：值原样保存，saltValue/encryptionKey 等密钥不做加密
    """
    if request.value is None:
        raise bad_request(RuleValidationError("value", "Key and value are required"))

    try:
        entry = store.set_config(request.key, request.value, request.description)
        return envelope(entry, "Configuration updated successfully")
    except RuleValidationError as e:
        raise bad_request(e)
    except Exception as e:
        logger.error(f"更新配置失败: key={request.key}, {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"更新配置失败: {str(e)}"
        )


@router.post("/global-switch", status_code=status.HTTP_200_OK)
async def toggle_global_switch(
    request: GlobalSwitchRequest,
    store: PolicyStore = Depends(get_policy_store),
):
    """切换全局脱敏开关"""
    enabled = store.set_global_enabled(request.enabled)
    return envelope(
        {"enabled": enabled, "timestamp": now_millis()},
        f"Global sanitization {'enabled' if enabled else 'disabled'}",
    )


@router.post("/reset", status_code=status.HTTP_200_OK)
async def reset_to_defaults(store: PolicyStore = Depends(get_policy_store)):
    """
    重置为默认配置

    删除全部配置和规则后写回默认值，在同一个事务内完成
    """
    try:
        store.reset_to_defaults()
        return envelope(None, "Configuration reset to defaults successfully")
    except Exception as e:
        logger.error(f"重置配置失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"重置配置失败: {str(e)}"
        )
