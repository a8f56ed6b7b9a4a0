"""
主存储 / 回退缓存同步协调器

状态机只有两个状态：
- PRIMARY_AVAILABLE: 操作先走主存储
- PRIMARY_UNAVAILABLE: 操作直接走回退缓存

任何一次主存储调用失败（网络错误、超时、非 2xx）立即转为 PRIMARY_UNAVAILABLE，
只有 probe() 成功才能回到 PRIMARY_AVAILABLE。每个操作开始时确定走哪条路径，
执行过程中不再检查状态。

写操作在主存储失败后写入回退缓存，并以降级成功返回（degraded=True）；
两边不会自动合并，下一次从主存储成功读取时整体覆盖回退缓存。
回退缓存也写失败时，用 refresh() 重建本地视图并抛出 SyncFailedError。
"""
import asyncio
import os
from dataclasses import dataclass
from functools import partial
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Union

from ..utils.datetime_helper import now_millis, to_iso_string, utc_now
from ..utils.logger import get_logger, log_sync_error
from .dto import BATCH_OPERATIONS, SanitizationRule
from .errors import (
    FallbackWriteError,
    RuleNotFoundError,
    RuleValidationError,
    StoreUnavailableError,
    SyncFailedError,
)
from .fallback_cache import FallbackCache
from .normalizer import normalize
from .primary_client import PrimaryStoreClient

logger = get_logger(__name__)


class SyncState(str, Enum):
    PRIMARY_AVAILABLE = "primary_available"
    PRIMARY_UNAVAILABLE = "primary_unavailable"


class SyncSource(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass
class SyncResult:
    """一次同步操作的结果"""
    success: bool
    data: Any = None
    message: Optional[str] = None
    source: SyncSource = SyncSource.PRIMARY
    degraded: bool = False
    not_found: bool = False


class SyncCoordinator:
    """主存储优先、回退缓存兜底的规则客户端"""

    def __init__(
        self,
        primary: Optional[PrimaryStoreClient],
        fallback: FallbackCache,
        use_primary: bool = True,
    ):
        """
        Args:
            primary: 主存储客户端；为 None 时只使用回退缓存
            fallback: 回退缓存
            use_primary: False 时固定走回退缓存（probe 总是失败）
        """
        self.primary = primary
        self.fallback = fallback
        self.use_primary = use_primary and primary is not None
        # 第一次 probe 之前视为不可用
        self.state = SyncState.PRIMARY_UNAVAILABLE

        self._rules: List[SanitizationRule] = []
        self._enabled = True

    # ============ 状态 ============

    @property
    def primary_available(self) -> bool:
        return self.state == SyncState.PRIMARY_AVAILABLE

    @property
    def rules(self) -> List[SanitizationRule]:
        """当前本地视图中的规则（可能包含尚未确认的修改）"""
        return list(self._rules)

    @property
    def global_enabled(self) -> bool:
        return self._enabled

    def _mark_unavailable(self, operation: str, error: Exception):
        if self.state == SyncState.PRIMARY_AVAILABLE:
            logger.warning(f"Primary store request failed, falling back to local cache: {operation}")
        log_sync_error(logger, operation, error, endpoint=self.primary.base_url if self.primary else None)
        self.state = SyncState.PRIMARY_UNAVAILABLE

    async def probe(self) -> bool:
        """
        健康检查，成功时切回 PRIMARY_AVAILABLE

        不会合并两边的数据
        """
        if not self.use_primary:
            self.state = SyncState.PRIMARY_UNAVAILABLE
            return False

        try:
            await self.primary.health()
        except (StoreUnavailableError, RuleNotFoundError, RuleValidationError) as e:
            logger.warning(f"Primary store health probe failed: {e}")
            self.state = SyncState.PRIMARY_UNAVAILABLE
            return False

        if self.state != SyncState.PRIMARY_AVAILABLE:
            logger.info("Primary store is available again")
        self.state = SyncState.PRIMARY_AVAILABLE
        return True

    async def close(self):
        if self.primary is not None:
            await self.primary.close()

    async def _run_blocking(self, func: Callable[..., Any], *args) -> Any:
        """在线程池中执行回退缓存的文件读写，不阻塞事件循环"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    # ============ 通用执行路径 ============

    async def _execute(
        self,
        operation: str,
        primary_call: Callable[[], Awaitable[Any]],
        fallback_call: Callable[[], Any],
        message: str,
    ) -> SyncResult:
        """
        执行一个写操作

        RuleValidationError 原样抛出，不回退也不改变状态；
        RuleNotFoundError 转为 not_found 结果。
        """
        use_primary = self.primary_available

        if use_primary:
            try:
                data = await primary_call()
                return SyncResult(success=True, data=data, message=message, source=SyncSource.PRIMARY)
            except RuleNotFoundError as e:
                return SyncResult(success=False, message=str(e), source=SyncSource.PRIMARY, not_found=True)
            except StoreUnavailableError as e:
                self._mark_unavailable(operation, e)

        try:
            data = await self._run_blocking(fallback_call)
        except RuleNotFoundError as e:
            return SyncResult(
                success=False, message=str(e), source=SyncSource.FALLBACK, degraded=True, not_found=True
            )
        except FallbackWriteError as e:
            log_sync_error(logger, operation, e)
            await self.refresh()
            raise SyncFailedError(operation, e) from e

        return SyncResult(success=True, data=data, message=message, source=SyncSource.FALLBACK, degraded=True)

    async def _mutate(self, operation: str, speculate: Callable[[], None], primary_call, fallback_call, message: str):
        """先更新本地视图，再执行写操作；校验失败时恢复视图"""
        snapshot = (list(self._rules), self._enabled)
        speculate()
        try:
            return await self._execute(operation, primary_call, fallback_call, message)
        except RuleValidationError:
            self._rules, self._enabled = snapshot
            raise

    def _replace_in_view(self, rule: SanitizationRule):
        for index, current in enumerate(self._rules):
            if current.id == rule.id:
                self._rules[index] = rule
                return
        self._rules.append(rule)

    def _remove_from_view(self, rule_id: str):
        self._rules = [rule for rule in self._rules if rule.id != rule_id]

    @staticmethod
    def _found(value: Any, rule_id: str) -> Any:
        if value is None or value is False:
            raise RuleNotFoundError(rule_id)
        return value

    # ============ 读取 ============

    async def refresh(self) -> SyncResult:
        """
        重新获取权威配置并重建本地视图

        主存储可用时从主存储读取并整体覆盖回退缓存，否则读取回退缓存
        """
        if self.primary_available:
            try:
                config = await self.primary.get_config()
            except (StoreUnavailableError, RuleNotFoundError) as e:
                self._mark_unavailable("get_rules", e)
            else:
                self._rules, self._enabled = list(config["rules"]), config["enabled"]
                try:
                    await self._run_blocking(self.fallback.replace_all, config["rules"], config["enabled"])
                except FallbackWriteError as e:
                    logger.warning(f"Failed to overwrite fallback cache after primary read: {e}")
                return SyncResult(success=True, data=config, source=SyncSource.PRIMARY)

        config = await self._run_blocking(self.fallback.get_config)
        self._rules, self._enabled = list(config["rules"]), config["enabled"]
        return SyncResult(success=True, data=config, source=SyncSource.FALLBACK, degraded=True)

    async def get_rules(self) -> SyncResult:
        """获取 {enabled, rules}"""
        return await self.refresh()

    async def get_metrics(self) -> SyncResult:
        if self.primary_available:
            try:
                metrics = await self.primary.get_metrics()
                return SyncResult(success=True, data=metrics, source=SyncSource.PRIMARY)
            except (StoreUnavailableError, RuleNotFoundError) as e:
                self._mark_unavailable("get_metrics", e)

        metrics = await self._run_blocking(self.fallback.get_metrics)
        return SyncResult(success=True, data=metrics, source=SyncSource.FALLBACK, degraded=True)

    async def get_health(self) -> SyncResult:
        if self.primary_available:
            try:
                health = await self.primary.health()
                return SyncResult(success=True, data=health, source=SyncSource.PRIMARY)
            except (StoreUnavailableError, RuleNotFoundError) as e:
                self._mark_unavailable("get_health", e)

        health = {
            "status": "healthy",
            "timestamp": to_iso_string(utc_now()),
            "version": "1.0.0",
            "checks": {"storage": "healthy"},
        }
        return SyncResult(success=True, data=health, source=SyncSource.FALLBACK, degraded=True)

    # ============ 写入 ============

    async def create_rule(self, raw: Union[Mapping[str, Any], SanitizationRule]) -> SyncResult:
        """
        创建规则

        Raises:
            RuleValidationError: 规则无效（本地校验或主存储 400）
            SyncFailedError: 主存储和回退缓存都失败
        """
        rule = normalize(raw)
        result = await self._mutate(
            "create_rule",
            lambda: self._rules.append(rule),
            lambda: self.primary.create_rule(rule),
            lambda: self.fallback.create_rule(rule),
            "Rule created successfully",
        )
        if result.success:
            self._replace_in_view(result.data)
        return result

    async def update_rule(self, rule_id: str, raw: Union[Mapping[str, Any], SanitizationRule]) -> SyncResult:
        rule = normalize(raw, rule_id=rule_id)
        result = await self._mutate(
            "update_rule",
            lambda: self._replace_in_view(rule),
            lambda: self.primary.update_rule(rule_id, rule),
            lambda: self._found(self.fallback.update_rule(rule_id, rule), rule_id),
            "Rule updated successfully",
        )
        if result.success:
            self._replace_in_view(result.data)
        elif result.not_found:
            self._remove_from_view(rule_id)
        return result

    async def delete_rule(self, rule_id: str) -> SyncResult:
        return await self._mutate(
            "delete_rule",
            lambda: self._remove_from_view(rule_id),
            lambda: self.primary.delete_rule(rule_id),
            lambda: self._found(self.fallback.delete_rule(rule_id), rule_id),
            "Rule deleted successfully",
        )

    async def toggle_rule(self, rule_id: str, enabled: bool) -> SyncResult:
        def speculate():
            self._rules = [
                rule.model_copy(update={"enabled": enabled}) if rule.id == rule_id else rule
                for rule in self._rules
            ]

        result = await self._mutate(
            "toggle_rule",
            speculate,
            lambda: self.primary.toggle_rule(rule_id, enabled),
            lambda: self._found(self.fallback.toggle_rule(rule_id, enabled), rule_id),
            f"Rule {'enabled' if enabled else 'disabled'} successfully",
        )
        if result.success:
            self._replace_in_view(result.data)
        return result

    async def batch_operation(self, rule_ids: Iterable[str], operation: str) -> SyncResult:
        """
        批量启用/禁用/删除

        data 为 BatchResult，部分失败时 success=False 但失败的ID会完整列出
        """
        if operation not in BATCH_OPERATIONS:
            raise RuleValidationError("operation", "Invalid operation. Must be enable, disable, or delete")
        rule_ids = list(rule_ids or [])
        if not rule_ids:
            raise RuleValidationError("ruleIds", "Invalid ruleIds array")

        def speculate():
            targets = set(rule_ids)
            if operation == "delete":
                self._rules = [rule for rule in self._rules if rule.id not in targets]
            else:
                self._rules = [
                    rule.model_copy(update={"enabled": operation == "enable"}) if rule.id in targets else rule
                    for rule in self._rules
                ]

        result = await self._mutate(
            "batch_operation",
            speculate,
            lambda: self.primary.batch_operation(rule_ids, operation),
            lambda: self.fallback.batch_operation(rule_ids, operation),
            f"Batch {operation} completed",
        )
        batch = result.data
        result.success = batch.success
        result.message = batch.message or result.message
        return result

    async def toggle_global_switch(self, enabled: bool) -> SyncResult:
        """切换全局开关；走主存储成功时同时写入回退缓存"""

        async def on_primary():
            value = await self.primary.set_global_enabled(enabled)
            try:
                await self._run_blocking(self.fallback.set_global_enabled, value)
            except FallbackWriteError as e:
                logger.warning(f"Failed to sync global switch to fallback cache: {e}")
            return {"enabled": value, "timestamp": now_millis()}

        def on_fallback():
            return {"enabled": self.fallback.set_global_enabled(enabled), "timestamp": now_millis()}

        def speculate():
            self._enabled = enabled

        result = await self._mutate(
            "toggle_global_switch",
            speculate,
            on_primary,
            on_fallback,
            f"Global sanitization {'enabled' if enabled else 'disabled'}",
        )
        self._enabled = result.data["enabled"]
        return result

    async def reset_to_defaults(self) -> SyncResult:
        async def on_primary():
            await self.primary.reset_to_defaults()

        result = await self._execute(
            "reset_to_defaults",
            on_primary,
            self.fallback.reset_to_defaults,
            "Successfully reset to default configuration",
        )
        await self.refresh()
        return result


def _env_flag(name: str, default: bool = True) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def create_sync_coordinator(
    primary: Optional[PrimaryStoreClient] = None,
    fallback: Optional[FallbackCache] = None,
) -> SyncCoordinator:
    """
    按环境变量创建同步协调器

    USE_BACKEND=false 时只使用回退缓存
    """
    use_primary = _env_flag("USE_BACKEND", True)
    if primary is None and use_primary:
        primary = PrimaryStoreClient()
    return SyncCoordinator(primary, fallback or FallbackCache(), use_primary=use_primary)
