"""
服务层包
"""
from .encryption_service import EncryptionService
from .errors import (
    SanitizationError,
    RuleValidationError,
    RuleNotFoundError,
    StoreUnavailableError,
    FallbackWriteError,
    SyncFailedError,
)
from .normalizer import normalize, convert_legacy_rule, is_legacy_rule
from .condition_matcher import MatchContext, matches, rule_matches
from .action_executor import apply
from .rule_selector import MatchPolicy, select, resolve, sanitize_record
from .rule_preview import preview_rule
from .policy_store import PolicyStore, get_policy_store
from .fallback_cache import FallbackCache
from .primary_client import PrimaryStoreClient
from .sync_coordinator import (
    SyncCoordinator,
    SyncResult,
    SyncSource,
    SyncState,
    create_sync_coordinator,
)
from .dto import (
    Category,
    Sensitivity,
    SanitizationRule,
    RuleFilters,
    BatchResult,
    ImportResult,
    RuleMetrics,
)

__all__ = [
    "EncryptionService",
    "SanitizationError",
    "RuleValidationError",
    "RuleNotFoundError",
    "StoreUnavailableError",
    "FallbackWriteError",
    "SyncFailedError",
    "normalize",
    "convert_legacy_rule",
    "is_legacy_rule",
    "MatchContext",
    "matches",
    "rule_matches",
    "apply",
    "MatchPolicy",
    "select",
    "resolve",
    "sanitize_record",
    "preview_rule",
    "PolicyStore",
    "get_policy_store",
    "FallbackCache",
    "PrimaryStoreClient",
    "SyncCoordinator",
    "SyncResult",
    "SyncSource",
    "SyncState",
    "create_sync_coordinator",
    "Category",
    "Sensitivity",
    "SanitizationRule",
    "RuleFilters",
    "BatchResult",
    "ImportResult",
    "RuleMetrics",
]
