"""
脱敏规则存储服务
负责规则的增删改查、批量操作、全局配置、统计和导入导出

所有写操作先经过 normalizer；批量操作逐条独立提交，单条失败不影响其它规则。
规则更新是整体替换，最后写入者生效（没有版本号检查）。
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database import Database, get_database
from ..models.sanitization_config import SanitizationConfig as SanitizationConfigModel
from ..models.sanitization_rule import SanitizationRule as SanitizationRuleModel
from ..utils.datetime_helper import ensure_utc, now_millis, to_iso_string, utc_now
from ..utils.logger import get_logger, log_store_error
from .defaults import DEFAULT_GLOBAL_SETTINGS, default_configs, default_rules
from .dto import (
    BATCH_OPERATIONS,
    BatchResult,
    ConfigEntry,
    ExportDocument,
    FullConfig,
    ImportFailure,
    ImportResult,
    RuleFilters,
    RuleMetrics,
    SanitizationRule,
)
from .errors import RuleValidationError
from .normalizer import normalize

logger = get_logger(__name__)

GLOBAL_ENABLED_KEY = "global_enabled"
GLOBAL_SETTINGS_KEY = "global_settings"

CONDITION_TYPE_LABELS = {
    "regex": "PATTERN",
    "key_keyword": "FIELD_NAME",
}


FALSE_STRINGS = ("false", "0", "no", "off", "")


def as_flag(value: Any, default: bool = True) -> bool:
    """把配置值解析为布尔值，字符串 "false"/"0" 等视为 False"""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)


def build_metrics(rules: List[SanitizationRule]) -> RuleMetrics:
    """
    统计规则数量

    rulesByType 使用 PATTERN/FIELD_NAME，rulesBySeverity 使用大写敏感级别
    """
    rules_by_type = {"PATTERN": 0, "FIELD_NAME": 0}
    rules_by_severity = {"CRITICAL": 0, "HIGH": 0, "MEDIUM": 0, "LOW": 0}
    for rule in rules:
        label = CONDITION_TYPE_LABELS.get(rule.condition.type, "UNKNOWN")
        rules_by_type[label] = rules_by_type.get(label, 0) + 1
        rules_by_severity[rule.sensitivity.value.upper()] += 1

    enabled = sum(1 for rule in rules if rule.enabled)
    return RuleMetrics(
        total_rules=len(rules),
        enabled_rules=enabled,
        disabled_rules=len(rules) - enabled,
        rules_by_type=rules_by_type,
        rules_by_severity=rules_by_severity,
        last_updated=now_millis(),
    )


class PolicyStore:
    """规则存储门面"""

    def __init__(self, database: Database):
        """
        初始化规则存储

        Args:
            database: 数据库实例
        """
        self.database = database

    # ============ 行与规则转换 ============

    @staticmethod
    def _row_to_rule(row: SanitizationRuleModel) -> SanitizationRule:
        return normalize({
            "id": row.id,
            "name": row.name,
            "description": row.description,
            "enabled": row.enabled,
            "priority": row.priority,
            "category": row.category,
            "sensitivity": row.sensitivity,
            "condition": row.condition,
            "action": row.action,
            "includeServices": row.include_services,
            "excludeServices": row.exclude_services,
            "conditions": row.conditions,
            "metadata": {
                "createdAt": row.created_at,
                "updatedAt": row.updated_at,
                "version": row.version,
                "author": row.created_by,
            },
        })

    @staticmethod
    def _fill_row(row: SanitizationRuleModel, rule: SanitizationRule):
        wire = rule.to_wire()
        row.name = rule.name
        row.description = rule.description
        row.enabled = rule.enabled
        row.priority = rule.priority
        row.category = rule.category.value
        row.sensitivity = rule.sensitivity.value
        row.condition = wire["condition"]
        row.action = wire["action"]
        row.include_services = wire.get("includeServices")
        row.exclude_services = wire.get("excludeServices")
        row.conditions = wire.get("conditions")
        row.created_by = rule.metadata.author
        row.version = rule.metadata.version

    @staticmethod
    def _bump_updated_at(row: SanitizationRuleModel):
        now = utc_now()
        previous = ensure_utc(row.updated_at) if row.updated_at else now
        row.updated_at = max(now, previous)

    # ============ 规则 ============

    def list_rules(self, filters: Union[RuleFilters, Mapping[str, Any], None] = None) -> List[SanitizationRule]:
        """
        获取规则列表

        Args:
            filters: 可选过滤条件 {enabled, category, sensitivity}

        Returns:
            按 priority 升序、创建时间降序排列的规则
        """
        if filters is None:
            filters = RuleFilters()
        elif not isinstance(filters, RuleFilters):
            filters = RuleFilters.model_validate(dict(filters))

        with self.database.get_session() as session:
            query = session.query(SanitizationRuleModel)

            if filters.enabled is not None:
                query = query.filter(SanitizationRuleModel.enabled == filters.enabled)
            if filters.category is not None:
                query = query.filter(SanitizationRuleModel.category == filters.category.value)
            if filters.sensitivity is not None:
                query = query.filter(SanitizationRuleModel.sensitivity == filters.sensitivity.value)

            rows = query.order_by(
                SanitizationRuleModel.priority.asc(),
                SanitizationRuleModel.created_at.desc()
            ).all()

            rules = []
            for row in rows:
                try:
                    rules.append(self._row_to_rule(row))
                except RuleValidationError as e:
                    logger.error(f"Skipping unreadable rule row: id={row.id}, error={e}")
            return rules

    def get_rule(self, rule_id: str) -> Optional[SanitizationRule]:
        """根据ID获取规则，不存在时返回 None"""
        with self.database.get_session() as session:
            row = session.get(SanitizationRuleModel, rule_id)
            if row is None:
                return None
            return self._row_to_rule(row)

    def create_rule(self, raw: Union[Mapping[str, Any], SanitizationRule]) -> SanitizationRule:
        """
        创建规则

        Args:
            raw: 新格式或旧格式的规则，未提供 id 时自动生成

        Returns:
            规范化并保存后的规则

        Raises:
            RuleValidationError: 校验失败或 id 已存在
        """
        rule = normalize(raw)

        try:
            with self.database.get_session() as session:
                if session.get(SanitizationRuleModel, rule.id) is not None:
                    raise RuleValidationError("id", f"rule {rule.id} already exists")

                row = SanitizationRuleModel(id=rule.id)
                self._fill_row(row, rule)
                row.created_at = rule.created_at
                row.updated_at = max(utc_now(), rule.created_at)
                session.add(row)
                session.flush()
                created = self._row_to_rule(row)
        except IntegrityError as e:
            raise RuleValidationError("id", f"rule {rule.id} already exists") from e

        logger.info(f"规则创建成功: id={created.id}, name={created.name}")
        return created

    def update_rule(self, rule_id: str, raw: Union[Mapping[str, Any], SanitizationRule]) -> Optional[SanitizationRule]:
        """
        整体替换规则

        createdAt 保持不变，updatedAt 不会倒退

        Returns:
            更新后的规则；规则不存在时返回 None
        """
        rule = normalize(raw, rule_id=rule_id)

        with self.database.get_session() as session:
            row = session.get(SanitizationRuleModel, rule_id)
            if row is None:
                logger.info(f"更新规则失败，规则不存在: id={rule_id}")
                return None

            self._fill_row(row, rule)
            self._bump_updated_at(row)
            session.flush()
            updated = self._row_to_rule(row)

        logger.info(f"规则更新成功: id={rule_id}")
        return updated

    def delete_rule(self, rule_id: str) -> bool:
        """删除规则，返回是否删除成功（不存在时为 False）"""
        with self.database.get_session() as session:
            row = session.get(SanitizationRuleModel, rule_id)
            if row is None:
                return False
            session.delete(row)

        logger.info(f"规则删除成功: id={rule_id}")
        return True

    def toggle_rule(self, rule_id: str, enabled: bool) -> Optional[SanitizationRule]:
        """切换单条规则启用状态，不存在时返回 None"""
        with self.database.get_session() as session:
            row = session.get(SanitizationRuleModel, rule_id)
            if row is None:
                return None
            row.enabled = enabled
            self._bump_updated_at(row)
            session.flush()
            return self._row_to_rule(row)

    def batch_operation(self, rule_ids: Iterable[str], operation: str) -> BatchResult:
        """
        批量启用/禁用/删除

        每个ID独立处理，失败的ID收集后继续；全部成功时 success 才为 True

        Raises:
            RuleValidationError: 操作类型不支持或ID列表为空
        """
        if operation not in BATCH_OPERATIONS:
            raise RuleValidationError("operation", "Invalid operation. Must be enable, disable, or delete")
        rule_ids = list(rule_ids or [])
        if not rule_ids:
            raise RuleValidationError("ruleIds", "Invalid ruleIds array")

        success_count = 0
        failed_rules: List[str] = []

        for rule_id in rule_ids:
            try:
                with self.database.get_session() as session:
                    row = session.get(SanitizationRuleModel, rule_id)
                    if row is None:
                        failed_rules.append(rule_id)
                        continue

                    if operation == "delete":
                        session.delete(row)
                    else:
                        row.enabled = operation == "enable"
                        self._bump_updated_at(row)
                success_count += 1
            except SQLAlchemyError as e:
                log_store_error(logger, f"batch_{operation}", e, rule_id=rule_id)
                failed_rules.append(rule_id)

        failure_count = len(failed_rules)
        logger.info(
            f"Batch {operation} completed: {success_count} successful, {failure_count} failed"
        )
        return BatchResult(
            success=failure_count == 0,
            success_count=success_count,
            failure_count=failure_count,
            failed_rules=failed_rules,
            message=f"Batch {operation} completed: {success_count} successful, {failure_count} failed",
        )

    def count_rules(self) -> int:
        with self.database.get_session() as session:
            return session.query(SanitizationRuleModel).count()

    # ============ 配置 ============

    @staticmethod
    def _config_entry(row: SanitizationConfigModel) -> ConfigEntry:
        return ConfigEntry(
            key=row.config_key,
            value=row.config_value,
            description=row.description,
            updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
        )

    def get_config(self, key: str) -> Optional[ConfigEntry]:
        """获取配置项，不存在时返回 None"""
        with self.database.get_session() as session:
            row = session.get(SanitizationConfigModel, key)
            if row is None:
                return None
            return self._config_entry(row)

    def set_config(self, key: str, value: Any, description: Optional[str] = None) -> ConfigEntry:
        """
        写入配置项（不存在则创建，存在则覆盖值；description 为空时保留原描述）
        """
        if not key or not key.strip():
            raise RuleValidationError("key", "Key and value are required")

        with self.database.get_session() as session:
            row = session.get(SanitizationConfigModel, key)
            if row is None:
                row = SanitizationConfigModel(config_key=key)
                session.add(row)
            row.config_value = value
            if description is not None:
                row.description = description
            row.updated_at = utc_now()
            session.flush()
            entry = self._config_entry(row)

        # 只记录键名，配置值可能包含密钥
        logger.info(f"配置已更新: key={key}")
        return entry

    def get_all_configs(self) -> Dict[str, Dict[str, Any]]:
        """获取全部配置 {key: {value, description, updatedAt}}"""
        with self.database.get_session() as session:
            rows = session.query(SanitizationConfigModel).order_by(SanitizationConfigModel.config_key).all()
            return {
                row.config_key: self._config_entry(row).model_dump(
                    mode="json", by_alias=True, exclude={"key"}
                )
                for row in rows
            }

    def is_global_enabled(self) -> bool:
        """全局开关状态，未配置时默认开启"""
        entry = self.get_config(GLOBAL_ENABLED_KEY)
        if entry is None:
            return True
        if isinstance(entry.value, Mapping):
            return as_flag(entry.value.get("enabled"))
        return as_flag(entry.value)

    def set_global_enabled(self, enabled: bool) -> bool:
        """设置全局开关"""
        self.set_config(GLOBAL_ENABLED_KEY, {"enabled": enabled}, "全局脱敏开关")
        logger.info(f"Global sanitization {'enabled' if enabled else 'disabled'}")
        return enabled

    def get_global_settings(self) -> Dict[str, Any]:
        entry = self.get_config(GLOBAL_SETTINGS_KEY)
        if entry is None or not isinstance(entry.value, Mapping):
            return dict(DEFAULT_GLOBAL_SETTINGS)
        return dict(entry.value)

    def get_full_config(self) -> FullConfig:
        """全局开关 + 全部规则 + 全局设置"""
        return FullConfig(
            enabled=self.is_global_enabled(),
            timestamp=now_millis(),
            rules=self.list_rules(),
            global_settings=self.get_global_settings(),
        )

    # ============ 统计 ============

    def get_metrics(self) -> RuleMetrics:
        """按匹配类型和敏感级别统计规则数量"""
        return build_metrics(self.list_rules())

    # ============ 初始化 / 重置 ============

    def _insert_defaults(self, session, skip_existing_configs: bool = False):
        for config in default_configs():
            if skip_existing_configs and session.get(SanitizationConfigModel, config["key"]) is not None:
                continue
            session.add(SanitizationConfigModel(
                config_key=config["key"],
                config_value=config["value"],
                description=config["description"],
                updated_at=utc_now(),
            ))

        for raw in default_rules():
            rule = normalize(raw)
            row = SanitizationRuleModel(id=rule.id)
            self._fill_row(row, rule)
            row.created_at = rule.created_at
            row.updated_at = rule.updated_at
            session.add(row)

    def seed_defaults(self) -> bool:
        """
        规则表为空时写入默认配置和默认规则

        Returns:
            是否写入了默认数据
        """
        if self.count_rules() > 0:
            logger.info("Database already has rules, skipping initialization")
            return False

        with self.database.get_session() as session:
            self._insert_defaults(session, skip_existing_configs=True)

        logger.info(f"默认规则初始化完成: rules={self.count_rules()}")
        return True

    def reset_to_defaults(self):
        """删除全部配置和规则并写回默认值（单个事务）"""
        with self.database.get_session() as session:
            session.query(SanitizationConfigModel).delete()
            session.query(SanitizationRuleModel).delete()
            session.flush()
            self._insert_defaults(session)

        logger.info("Configuration reset to defaults successfully")

    # ============ 导入导出 ============

    def export_rules(self) -> ExportDocument:
        """导出全部规则"""
        rules = self.list_rules()
        return ExportDocument(
            export_date=to_iso_string(utc_now()),
            total_rules=len(rules),
            rules=rules,
        )

    def import_rules(self, rules: Iterable[Any], replace_existing: bool = False) -> ImportResult:
        """
        导入规则

        Args:
            rules: 规则列表（新旧格式均可）
            replace_existing: 为 True 时先删除全部现有规则

        Returns:
            ImportResult；单条失败只记录在 errors 中，不影响其它规则
        """
        if replace_existing:
            with self.database.get_session() as session:
                deleted = session.query(SanitizationRuleModel).delete()
            logger.info(f"导入前删除现有规则: count={deleted}")

        success_count = 0
        errors: List[ImportFailure] = []

        for raw in rules:
            label = None
            if isinstance(raw, Mapping):
                label = raw.get("id") or raw.get("name")
            try:
                self.create_rule(raw)
                success_count += 1
            except RuleValidationError as e:
                errors.append(ImportFailure(rule=label, error=str(e)))
            except SQLAlchemyError as e:
                log_store_error(logger, "import", e, rule_id=label)
                errors.append(ImportFailure(rule=label, error=str(e)))

        failure_count = len(errors)
        logger.info(f"Import completed: {success_count} successful, {failure_count} failed")
        return ImportResult(
            success=failure_count == 0,
            success_count=success_count,
            failure_count=failure_count,
            errors=errors or None,
            message=f"Import completed: {success_count} successful, {failure_count} failed",
        )


# 全局规则存储实例
_policy_store = None


def get_policy_store() -> PolicyStore:
    """获取全局规则存储实例"""
    global _policy_store
    if _policy_store is None:
        _policy_store = PolicyStore(get_database())
    return _policy_store
