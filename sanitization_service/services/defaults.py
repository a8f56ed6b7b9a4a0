"""
默认规则与默认配置（初始化和重置时写入）
"""
import copy
from typing import Any, Dict, List

# 注意：saltValue / encryptionKey 以明文形式保存在配置表中
DEFAULT_CONFIGS: List[Dict[str, Any]] = [
    {
        "key": "global_enabled",
        "value": {"enabled": True},
        "description": "全局脱敏开关",
    },
    {
        "key": "global_settings",
        "value": {
            "version": "1.0.0",
            "markersEnabled": False,
            "markerFormat": "[MASKED]",
            "saltValue": "hypertrace_default_salt_2024",
            "encryptionKey": "hypertrace_encryption_key_2024",
        },
        "description": "全局设置",
    },
    {
        "key": "salt_config",
        "value": {
            "saltValue": "hypertrace_default_salt_2024",
            "autoGenerate": False,
            "rotationEnabled": False,
        },
        "description": "Salt值配置",
    },
    {
        "key": "encryption_config",
        "value": {
            "algorithm": "AES-256-GCM",
            "keyRotationDays": 90,
            "encryptionKey": "hypertrace_encryption_key_2024",
        },
        "description": "加密配置",
    },
]

DEFAULT_GLOBAL_SETTINGS: Dict[str, Any] = {
    "version": "1.0.0",
    "markersEnabled": False,
    "markerFormat": "[MASKED]",
}

DEFAULT_RULES: List[Dict[str, Any]] = [
    {
        "id": "default-phone-rule",
        "name": "手机号脱敏",
        "description": "通过字段名称匹配手机号字段并进行脱敏处理",
        "enabled": True,
        "priority": 10,
        "category": "personal_info",
        "sensitivity": "high",
        "condition": {
            "type": "key_keyword",
            "keywords": ["phone", "mobile", "phoneNumber", "tel", "cellphone"],
            "caseSensitive": False,
        },
        "action": {
            "algorithm": "mask",
            "params": {"maskChar": "*", "prefix": 3, "suffix": 4, "keepDomain": False},
        },
    },
    {
        "id": "default-email-rule",
        "name": "邮箱脱敏",
        "description": "通过字段名称匹配邮箱字段并进行脱敏处理，保留域名部分",
        "enabled": True,
        "priority": 20,
        "category": "personal_info",
        "sensitivity": "medium",
        "condition": {
            "type": "key_keyword",
            "keywords": ["email", "emailAddress", "mail", "userEmail", "e_mail", "Email", "EMAIL"],
            "caseSensitive": False,
        },
        "action": {
            "algorithm": "mask",
            "params": {"maskChar": "*", "prefix": 3, "suffix": 0, "keepDomain": True},
        },
    },
    {
        "id": "default-idcard-rule",
        "name": "身份证脱敏",
        "description": "通过字段名称匹配身份证字段并进行脱敏处理",
        "enabled": True,
        "priority": 5,
        "category": "personal_info",
        "sensitivity": "critical",
        "condition": {
            "type": "key_keyword",
            "keywords": ["idCard", "identityCard", "citizenId", "idNumber"],
            "caseSensitive": False,
        },
        "action": {
            "algorithm": "mask",
            "params": {"maskChar": "*", "prefix": 4, "suffix": 4, "keepDomain": False},
        },
    },
    {
        "id": "default-credit-card-rule",
        "name": "信用卡脱敏",
        "description": "通过字段名称匹配信用卡字段并进行脱敏处理",
        "enabled": True,
        "priority": 5,
        "category": "financial",
        "sensitivity": "critical",
        "condition": {
            "type": "key_keyword",
            "keywords": ["cardNumber", "creditCard", "bankCard", "cardNo"],
            "caseSensitive": False,
        },
        "action": {
            "algorithm": "mask",
            "params": {"maskChar": "*", "prefix": 4, "suffix": 4, "keepDomain": False},
        },
    },
]


def default_rules() -> List[Dict[str, Any]]:
    """默认规则的副本（调用方可以随意修改）"""
    return copy.deepcopy(DEFAULT_RULES)


def default_configs() -> List[Dict[str, Any]]:
    """默认配置的副本"""
    return copy.deepcopy(DEFAULT_CONFIGS)
