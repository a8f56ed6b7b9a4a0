"""
数据传输对象 (Data Transfer Objects)

规则在对外（JSON）时使用 camelCase 字段名，内部使用 snake_case，
两种写法在输入时都接受。
"""
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..utils.datetime_helper import parse_timestamp, to_iso_string


class CamelModel(BaseModel):
    """对外字段使用 camelCase 的基类"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ 枚举 ============

class Category(str, Enum):
    """规则分类"""
    PERSONAL_INFO = "personal_info"
    FINANCIAL = "financial"
    SECURITY = "security"
    MEDICAL = "medical"
    BUSINESS = "business"
    OTHER = "other"


class Sensitivity(str, Enum):
    """敏感级别 low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# 选择顺序权重：越严重越靠前
SENSITIVITY_WEIGHT = {
    Sensitivity.CRITICAL: 1,
    Sensitivity.HIGH: 2,
    Sensitivity.MEDIUM: 3,
    Sensitivity.LOW: 4,
}


def _lower_enum_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ============ 匹配条件 ============

class RegexCondition(CamelModel):
    """按字段值的正则匹配"""
    type: Literal["regex"] = "regex"
    pattern: str
    description: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _pattern_must_compile(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("pattern is required for regex conditions")
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regular expression: {e}") from e
        return value


class KeywordCondition(CamelModel):
    """按字段名关键词匹配"""
    type: Literal["key_keyword"] = "key_keyword"
    keywords: List[str]
    case_sensitive: bool = False
    description: Optional[str] = None

    @field_validator("keywords")
    @classmethod
    def _keywords_not_blank(cls, value: List[str]) -> List[str]:
        keywords = [k.strip() for k in value if isinstance(k, str) and k.strip()]
        if not keywords:
            raise ValueError("at least one non-blank keyword is required")
        return keywords


RuleCondition = Annotated[Union[RegexCondition, KeywordCondition], Field(discriminator="type")]


# ============ 脱敏动作 ============

class MaskParams(CamelModel):
    mask_char: str = "*"
    prefix: int = Field(default=0, ge=0)
    suffix: int = Field(default=0, ge=0)
    keep_domain: bool = False

    @field_validator("mask_char")
    @classmethod
    def _single_char(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("maskChar must be a single character")
        return value


class MaskAction(CamelModel):
    """保留前后缀，中间用掩码字符替换"""
    algorithm: Literal["mask"] = "mask"
    params: MaskParams = Field(default_factory=MaskParams)


class HashParams(CamelModel):
    type: Literal["md5", "sha1", "sha256"] = "sha256"
    salt: str = ""


class HashAction(CamelModel):
    algorithm: Literal["hash"] = "hash"
    params: HashParams = Field(default_factory=HashParams)


class EncryptParams(CamelModel):
    key: str = Field(min_length=1)
    iv: Optional[str] = None


class EncryptAction(CamelModel):
    algorithm: Literal["encrypt"] = "encrypt"
    params: EncryptParams


class ReplaceParams(CamelModel):
    replacement: str


class ReplaceAction(CamelModel):
    algorithm: Literal["replace"] = "replace"
    params: ReplaceParams


class RemoveParams(CamelModel):
    pass


class RemoveAction(CamelModel):
    algorithm: Literal["remove"] = "remove"
    params: RemoveParams = Field(default_factory=RemoveParams)


RuleAction = Annotated[
    Union[MaskAction, HashAction, EncryptAction, ReplaceAction, RemoveAction],
    Field(discriminator="algorithm"),
]


# ============ 规则 ============

class RuleMetadata(CamelModel):
    """规则元信息"""
    created_at: datetime
    updated_at: datetime
    version: str = "1.0"
    author: str = "system"

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"invalid timestamp: {value!r}")
        return parsed

    @model_validator(mode="after")
    def _updated_not_before_created(self) -> "RuleMetadata":
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at
        return self

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamp(self, value: datetime) -> Optional[str]:
        return to_iso_string(value)


class SanitizationRule(CamelModel):
    """规范化后的脱敏规则（只由 normalizer 产生）"""
    id: str = Field(min_length=1)
    name: str
    description: str
    enabled: bool = True
    priority: int = 10
    category: Category = Category.PERSONAL_INFO
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    condition: RuleCondition
    action: RuleAction
    include_services: Optional[List[str]] = None
    exclude_services: Optional[List[str]] = None
    conditions: Optional[Dict[str, Any]] = None
    metadata: RuleMetadata

    @field_validator("name", "description")
    @classmethod
    def _required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("category", "sensitivity", mode="before")
    @classmethod
    def _lower_enum(cls, value: Any) -> Any:
        return _lower_enum_value(value)

    @field_validator("include_services", "exclude_services")
    @classmethod
    def _dedupe_services(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        seen = []
        for service in value:
            service = service.strip()
            if service and service not in seen:
                seen.append(service)
        return seen

    @property
    def created_at(self) -> datetime:
        return self.metadata.created_at

    @property
    def updated_at(self) -> datetime:
        return self.metadata.updated_at

    @property
    def severity_weight(self) -> int:
        return SENSITIVITY_WEIGHT[self.sensitivity]

    def to_wire(self) -> Dict[str, Any]:
        """JSON 兼容的 camelCase 字典"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============ 查询与结果 ============

class RuleFilters(CamelModel):
    """规则过滤条件（精确匹配）"""
    enabled: Optional[bool] = None
    category: Optional[Category] = None
    sensitivity: Optional[Sensitivity] = None

    @field_validator("category", "sensitivity", mode="before")
    @classmethod
    def _lower_enum(cls, value: Any) -> Any:
        return _lower_enum_value(value)


BatchOperation = Literal["enable", "disable", "delete"]
BATCH_OPERATIONS = ("enable", "disable", "delete")


class BatchResult(CamelModel):
    """批量操作结果（逐条处理，部分失败不终止）"""
    success: bool
    success_count: int
    failure_count: int
    failed_rules: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class ImportFailure(CamelModel):
    rule: Optional[str] = None
    error: str


class ImportResult(CamelModel):
    """导入结果"""
    success: bool
    success_count: int
    failure_count: int
    errors: Optional[List[ImportFailure]] = None
    message: Optional[str] = None


class ConfigEntry(CamelModel):
    """键值配置项"""
    key: str
    value: Any
    description: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_serializer("updated_at")
    def _serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso_string(value)


class RuleMetrics(CamelModel):
    """规则统计"""
    total_rules: int
    enabled_rules: int
    disabled_rules: int
    rules_by_type: Dict[str, int]
    rules_by_severity: Dict[str, int]
    config_version: Optional[str] = None
    last_updated: Optional[int] = None


class ExportDocument(CamelModel):
    """规则导出文档"""
    version: str = "1.0.0"
    export_date: str
    total_rules: int
    rules: List[SanitizationRule]


class FullConfig(CamelModel):
    """完整配置（全局开关 + 规则 + 全局设置）"""
    enabled: bool
    version: str = "1.0.0"
    timestamp: int
    rules: List[SanitizationRule]
    global_settings: Dict[str, Any] = Field(default_factory=dict)


class RuleTestResult(CamelModel):
    input: str
    matches: List[str]
    masked: str


class RuleValidationResult(CamelModel):
    """规则校验与试运行结果"""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    message: str
    test_result: Optional[RuleTestResult] = None
    test_output: Optional[str] = None
    timestamp: Optional[int] = None


# ============ 请求/响应 ============

class BatchOperationRequest(CamelModel):
    operation: str
    rule_ids: List[str]


class ToggleRuleRequest(CamelModel):
    enabled: StrictBool


class GlobalSwitchRequest(CamelModel):
    enabled: StrictBool


class ConfigUpdateRequest(CamelModel):
    key: str
    value: Any
    description: Optional[str] = None


class ImportRulesRequest(CamelModel):
    # 单条格式错误交给存储层记录为失败，不拒绝整个请求
    rules: List[Any]
    replace_existing: bool = False


class ValidateRuleRequest(CamelModel):
    rule: Dict[str, Any]
    test_input: Optional[str] = None
