"""
主存储 HTTP 客户端
通过 httpx 调用规则配置服务的 /api 接口，并把失败映射为服务异常：

- 网络错误、超时、5xx 及其它非 2xx 响应 -> StoreUnavailableError
- 404 -> RuleNotFoundError
- 400/422 -> RuleValidationError（调用方不应回退或重试）
"""
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx
from pydantic import ValidationError

from ..utils.logger import get_logger
from .dto import BatchResult, RuleMetrics, SanitizationRule
from .errors import RuleNotFoundError, RuleValidationError, StoreUnavailableError
from .normalizer import normalize

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 5.0


def _error_detail(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    if not isinstance(body, dict):
        return {}
    detail = body.get("detail", body)
    if isinstance(detail, dict):
        return detail
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        loc = detail[0].get("loc") or []
        return {"error": detail[0].get("msg"), "field": str(loc[-1]) if loc else "body"}
    return {"error": str(detail)}


class PrimaryStoreClient:
    """主存储客户端"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: 主存储地址，默认读取 PRIMARY_API_URL
            timeout: 单次请求超时（秒），默认读取 PRIMARY_TIMEOUT
            transport: 自定义 httpx transport（测试时传入 MockTransport/ASGITransport）
        """
        self.base_url = (base_url or os.getenv("PRIMARY_API_URL", "http://localhost:8001")).rstrip('/')
        if timeout is None:
            timeout = float(os.getenv("PRIMARY_TIMEOUT", DEFAULT_TIMEOUT))
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def close(self):
        await self._client.aclose()

    async def _request(self, method: str, endpoint: str, json: Any = None) -> Any:
        """
        发送请求并返回响应中的 data 字段

        Raises:
            StoreUnavailableError, RuleNotFoundError, RuleValidationError
        """
        try:
            response = await self._client.request(method, endpoint, json=json)
        except httpx.TimeoutException as e:
            raise StoreUnavailableError(f"{method} {endpoint} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code == 404:
            raise RuleNotFoundError(endpoint.rsplit('/', 1)[-1])

        if response.status_code in (400, 422):
            detail = _error_detail(response)
            raise RuleValidationError(
                detail.get("field") or "body",
                detail.get("error") or f"HTTP {response.status_code}",
            )

        if not response.is_success:
            detail = _error_detail(response)
            raise StoreUnavailableError(
                detail.get("error") or f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise StoreUnavailableError(f"{method} {endpoint} returned invalid JSON") from e

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # ============ 接口 ============

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/health")

    async def get_config(self) -> Dict[str, Any]:
        """
        获取完整配置

        Returns:
            {"enabled": bool, "rules": List[SanitizationRule]}
        """
        data = await self._request("GET", "/api/config")
        if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
            raise StoreUnavailableError("GET /api/config returned unexpected payload")
        try:
            rules = [normalize(raw) for raw in data["rules"]]
        except RuleValidationError as e:
            raise StoreUnavailableError(f"GET /api/config returned an invalid rule: {e}") from e
        return {"enabled": bool(data.get("enabled", True)), "rules": rules}

    async def get_rule(self, rule_id: str) -> SanitizationRule:
        return normalize(await self._request("GET", f"/api/rules/{rule_id}"))

    async def create_rule(self, rule: SanitizationRule) -> SanitizationRule:
        return normalize(await self._request("POST", "/api/rules", json=rule.to_wire()))

    async def update_rule(self, rule_id: str, rule: SanitizationRule) -> SanitizationRule:
        return normalize(await self._request("PUT", f"/api/rules/{rule_id}", json=rule.to_wire()))

    async def delete_rule(self, rule_id: str):
        await self._request("DELETE", f"/api/rules/{rule_id}")

    async def toggle_rule(self, rule_id: str, enabled: bool) -> SanitizationRule:
        """读取当前规则后整体更新 enabled 字段"""
        current = await self.get_rule(rule_id)
        return await self.update_rule(rule_id, current.model_copy(update={"enabled": enabled}))

    async def batch_operation(self, rule_ids: Iterable[str], operation: str) -> BatchResult:
        """
        批量操作

        批量接口本身 404 或返回无法解析的结果时视为主存储不可用
        """
        try:
            data = await self._request(
                "POST", "/api/rules/batch", json={"operation": operation, "ruleIds": list(rule_ids)}
            )
        except RuleNotFoundError as e:
            raise StoreUnavailableError("POST /api/rules/batch is not available") from e
        try:
            return BatchResult.model_validate(data)
        except ValidationError as e:
            raise StoreUnavailableError("POST /api/rules/batch returned unexpected payload") from e

    async def set_global_enabled(self, enabled: bool) -> bool:
        data = await self._request("POST", "/api/config/global-switch", json={"enabled": enabled})
        if isinstance(data, Mapping):
            return bool(data.get("enabled", enabled))
        return enabled

    async def reset_to_defaults(self):
        await self._request("POST", "/api/config/reset")

    async def get_metrics(self) -> RuleMetrics:
        data = await self._request("GET", "/api/metrics")
        try:
            return RuleMetrics.model_validate(data)
        except ValidationError as e:
            raise StoreUnavailableError("GET /api/metrics returned unexpected payload") from e

    async def list_rules(self) -> List[SanitizationRule]:
        data = await self._request("GET", "/api/rules")
        return [normalize(raw) for raw in data or []]
