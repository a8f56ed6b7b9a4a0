"""
测试公共夹具
"""
import os
import sys
from pathlib import Path

# 测试时不写日志文件
os.environ.setdefault("LOG_FILE", "")

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from sanitization_service.database import Database
from sanitization_service.services.policy_store import PolicyStore


def build_rule_payload(**overrides):
    """构造一条新格式规则"""
    payload = {
        "id": "test-rule",
        "name": "测试规则",
        "description": "测试用的手机号规则",
        "enabled": True,
        "priority": 10,
        "category": "personal_info",
        "sensitivity": "medium",
        "condition": {"type": "key_keyword", "keywords": ["phone"]},
        "action": {"algorithm": "mask", "params": {"maskChar": "*", "prefix": 3, "suffix": 4}},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_rule():
    """规则构造函数"""
    return build_rule_payload


@pytest.fixture
def database(tmp_path):
    """临时 SQLite 数据库（文件库，保证连接池中的连接看到同一份数据）"""
    db = Database(f"sqlite:///{tmp_path / 'sanitization.db'}")
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()


@pytest.fixture
def store(database):
    """空的规则存储"""
    return PolicyStore(database)


@pytest.fixture
def seeded_store(store):
    """写入默认规则后的规则存储"""
    store.seed_defaults()
    return store
