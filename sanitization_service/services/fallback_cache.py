"""
本地回退缓存
主存储不可达时，同步协调器把规则读写转到这里。

数据保存在一个 JSON 文件中：{"enabled": bool, "rules": [...]}
读失败时返回默认配置；写失败抛出 FallbackWriteError。
"""
import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..utils.datetime_helper import now_millis, to_iso_string, utc_now
from ..utils.logger import get_logger
from .defaults import default_rules
from .dto import BATCH_OPERATIONS, BatchResult, RuleMetrics, SanitizationRule
from .errors import FallbackWriteError, RuleValidationError
from .normalizer import normalize
from .policy_store import as_flag, build_metrics

logger = get_logger(__name__)

DEFAULT_CACHE_PATH = Path(__file__).parent.parent.parent / "data" / "fallback_rules.json"


def _default_document() -> Dict[str, Any]:
    return {
        "enabled": True,
        "rules": [normalize(raw).to_wire() for raw in default_rules()],
    }


class FallbackCache:
    """基于 JSON 文件的规则缓存"""

    def __init__(self, path: Union[str, Path, None] = None):
        """
        Args:
            path: 缓存文件路径，默认读取 FALLBACK_CACHE_PATH 环境变量
        """
        if path is None:
            path = os.getenv("FALLBACK_CACHE_PATH") or DEFAULT_CACHE_PATH
        self.path = Path(path)
        self._lock = threading.RLock()

    # ============ 文件读写 ============

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _default_document()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading fallback cache {self.path}: {e}")
            return _default_document()

        if not isinstance(document, dict) or not isinstance(document.get("rules"), list):
            logger.error(f"Fallback cache {self.path} has invalid format, using defaults")
            return _default_document()

        document.setdefault("enabled", True)
        return document

    def _write(self, document: Dict[str, Any]):
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing fallback cache {self.path}: {e}")
            raise FallbackWriteError(f"failed to write fallback cache {self.path}: {e}") from e

    def _rules(self, document: Mapping[str, Any]) -> List[SanitizationRule]:
        rules = []
        for raw in document["rules"]:
            try:
                rules.append(normalize(raw))
            except RuleValidationError as e:
                logger.warning(f"Skipping invalid rule in fallback cache: {e}")
        return rules

    @staticmethod
    def _find(rules: List[SanitizationRule], rule_id: str) -> int:
        for index, rule in enumerate(rules):
            if rule.id == rule_id:
                return index
        return -1

    def _save_rules(self, rules: List[SanitizationRule], enabled: bool):
        self._write({"enabled": enabled, "rules": [rule.to_wire() for rule in rules]})

    # ============ 读取 ============

    def get_rules(self) -> List[SanitizationRule]:
        with self._lock:
            return self._rules(self._read())

    def is_global_enabled(self) -> bool:
        with self._lock:
            return as_flag(self._read()["enabled"])

    def get_config(self) -> Dict[str, Any]:
        """{enabled, rules}，rules 为规范化后的规则"""
        with self._lock:
            document = self._read()
            return {"enabled": as_flag(document["enabled"]), "rules": self._rules(document)}

    def get_metrics(self) -> RuleMetrics:
        return build_metrics(self.get_rules())

    # ============ 写入 ============

    def create_rule(self, raw: Union[Mapping[str, Any], SanitizationRule]) -> SanitizationRule:
        """
        新增规则，未提供 id 时使用 rule-<毫秒时间戳>

        Raises:
            RuleValidationError: 规则无效或 id 已存在
            FallbackWriteError: 写文件失败
        """
        if isinstance(raw, SanitizationRule):
            raw = raw.to_wire()
        now = to_iso_string(utc_now())
        data = dict(raw)
        data["id"] = data.get("id") or f"rule-{now_millis()}"
        data["metadata"] = {**(data.get("metadata") or {}), "createdAt": now, "updatedAt": now}
        rule = normalize(data)

        with self._lock:
            document = self._read()
            rules = self._rules(document)
            if self._find(rules, rule.id) >= 0:
                raise RuleValidationError("id", f"rule {rule.id} already exists")
            rules.append(rule)
            self._save_rules(rules, document["enabled"])

        return rule

    def update_rule(self, rule_id: str, raw: Union[Mapping[str, Any], SanitizationRule]) -> Optional[SanitizationRule]:
        """整体替换规则，保留原 createdAt；规则不存在时返回 None"""
        if isinstance(raw, SanitizationRule):
            raw = raw.to_wire()

        with self._lock:
            document = self._read()
            rules = self._rules(document)
            index = self._find(rules, rule_id)
            if index < 0:
                return None

            data = dict(raw)
            data["metadata"] = {
                **(data.get("metadata") or {}),
                "createdAt": rules[index].created_at,
                "updatedAt": max(utc_now(), rules[index].updated_at),
            }
            rule = normalize(data, rule_id=rule_id)
            rules[index] = rule
            self._save_rules(rules, document["enabled"])

        return rule

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            document = self._read()
            rules = self._rules(document)
            index = self._find(rules, rule_id)
            if index < 0:
                return False
            del rules[index]
            self._save_rules(rules, document["enabled"])
        return True

    def toggle_rule(self, rule_id: str, enabled: bool) -> Optional[SanitizationRule]:
        with self._lock:
            document = self._read()
            rules = self._rules(document)
            index = self._find(rules, rule_id)
            if index < 0:
                return None
            rules[index] = self._with_enabled(rules[index], enabled)
            self._save_rules(rules, document["enabled"])
            return rules[index]

    @staticmethod
    def _with_enabled(rule: SanitizationRule, enabled: bool) -> SanitizationRule:
        metadata = rule.metadata.model_copy(update={"updated_at": max(utc_now(), rule.updated_at)})
        return rule.model_copy(update={"enabled": enabled, "metadata": metadata})

    def batch_operation(self, rule_ids: Iterable[str], operation: str) -> BatchResult:
        """逐条处理，一次写回文件"""
        if operation not in BATCH_OPERATIONS:
            raise RuleValidationError("operation", "Invalid operation. Must be enable, disable, or delete")
        rule_ids = list(rule_ids or [])
        if not rule_ids:
            raise RuleValidationError("ruleIds", "Invalid ruleIds array")

        failed_rules = []
        with self._lock:
            document = self._read()
            rules = self._rules(document)
            for rule_id in rule_ids:
                index = self._find(rules, rule_id)
                if index < 0:
                    failed_rules.append(rule_id)
                elif operation == "delete":
                    del rules[index]
                else:
                    rules[index] = self._with_enabled(rules[index], operation == "enable")
            self._save_rules(rules, document["enabled"])

        success_count = len(rule_ids) - len(failed_rules)
        return BatchResult(
            success=not failed_rules,
            success_count=success_count,
            failure_count=len(failed_rules),
            failed_rules=failed_rules,
            message=f"Batch operation completed: {success_count} successful, {len(failed_rules)} failed",
        )

    def set_global_enabled(self, enabled: bool) -> bool:
        with self._lock:
            document = self._read()
            document["enabled"] = enabled
            self._write(document)
        return enabled

    def replace_all(self, rules: Iterable[SanitizationRule], enabled: Optional[bool] = None):
        """用主存储读到的数据整体覆盖缓存（不做合并）"""
        with self._lock:
            if enabled is None:
                enabled = bool(self._read()["enabled"])
            self._save_rules(list(rules), enabled)

    def reset_to_defaults(self):
        with self._lock:
            self._write(_default_document())
        logger.info("Fallback cache reset to defaults")
