import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from uninav_core.domain.conversation import Conversation
from uninav_core.domain.exceptions import StorageError
from uninav_core.infrastructure.storage.conversation_store import KeyValueConversationStore
from uninav_core.infrastructure.storage.kv_store import JsonFileKeyValueStore


def test_file_store_get_set_remove():
    with tempfile.TemporaryDirectory() as d:
        kv = JsonFileKeyValueStore(root=Path(d) / ".storage")
        assert kv.get("uninavigator_language") is None
        kv.set("uninavigator_language", "si")
        assert kv.get("uninavigator_language") == "si"
        assert (Path(d) / ".storage" / "kv" / "uninavigator_language.json").exists()
        kv.remove("uninavigator_language")
        kv.remove("uninavigator_language")
        assert kv.get("uninavigator_language") is None


def test_file_store_leaves_no_temp_files():
    with tempfile.TemporaryDirectory() as d:
        kv = JsonFileKeyValueStore(root=d)
        for i in range(3):
            kv.set("k", str(i))
        assert [p.name for p in (Path(d) / "kv").iterdir()] == ["k.json"]


def test_file_store_rejects_path_like_keys():
    with tempfile.TemporaryDirectory() as d:
        kv = JsonFileKeyValueStore(root=d)
        with pytest.raises(StorageError):
            kv.set("../escape", "x")


def test_conversations_persist_across_instances():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        now = datetime.now(timezone.utc)
        store = KeyValueConversationStore(JsonFileKeyValueStore(root=root))
        store.upsert(Conversation(id="c1", title="temp", created_at=now, updated_at=now))
        store.set_active_id("c1")

        reopened = KeyValueConversationStore(JsonFileKeyValueStore(root=root))
        assert [c.id for c in reopened.list()] == ["c1"]
        assert reopened.get_active_id() == "c1"
        assert reopened.get("c1").updated_at == now
