import json
from datetime import datetime, timedelta, timezone

import pytest

from uninav_core.domain.conversation import Conversation
from uninav_core.domain.exceptions import StorageError
from uninav_core.domain.models import Utterance
from uninav_core.infrastructure.storage.conversation_store import (
    ACTIVE_CONVERSATION_KEY,
    CONVERSATIONS_KEY,
    KeyValueConversationStore,
)
from uninav_core.infrastructure.storage.kv_store import MemoryKeyValueStore


T0 = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def _conv(cid: str, title: str = "New Conversation", messages=None) -> Conversation:
    return Conversation(id=cid, title=title, created_at=T0, updated_at=T0, messages=list(messages or []))


def test_upsert_new_goes_to_front():
    store = KeyValueConversationStore(MemoryKeyValueStore())
    store.upsert(_conv("a"))
    store.upsert(_conv("b"))
    store.upsert(_conv("c"))
    assert [c.id for c in store.list()] == ["c", "b", "a"]


def test_upsert_existing_keeps_position():
    store = KeyValueConversationStore(MemoryKeyValueStore())
    for cid in ("a", "b", "c"):
        store.upsert(_conv(cid))
    store.upsert(_conv("a", title="renamed"))
    convs = store.list()
    assert [c.id for c in convs] == ["c", "b", "a"]
    assert convs[2].title == "renamed"


def test_capacity_drops_oldest():
    store = KeyValueConversationStore(MemoryKeyValueStore())
    for i in range(51):
        store.upsert(_conv(f"conv-{i}"))
    ids = [c.id for c in store.list()]
    assert len(ids) == 50
    assert "conv-0" not in ids
    assert ids[0] == "conv-50"
    assert ids[-1] == "conv-1"


def test_capacity_never_exceeded_with_updates():
    store = KeyValueConversationStore(MemoryKeyValueStore(), max_conversations=3)
    for i in range(5):
        store.upsert(_conv(f"c{i}"))
        store.upsert(_conv(f"c{i}", title="again"))
        assert len(store.list()) <= 3
    assert [c.id for c in store.list()] == ["c4", "c3", "c2"]


def test_delete_present_and_absent():
    store = KeyValueConversationStore(MemoryKeyValueStore())
    store.upsert(_conv("a"))
    store.upsert(_conv("b"))
    store.delete("a")
    store.delete("missing")
    assert [c.id for c in store.list()] == ["b"]


def test_active_id_is_not_validated():
    kv = MemoryKeyValueStore()
    store = KeyValueConversationStore(kv)
    assert store.get_active_id() is None
    store.set_active_id("ghost")
    assert store.get_active_id() == "ghost"
    assert store.get("ghost") is None
    store.set_active_id(None)
    assert store.get_active_id() is None
    assert kv.get(ACTIVE_CONVERSATION_KEY) is None


def test_messages_and_timestamps_survive_storage():
    kv = MemoryKeyValueStore()
    store = KeyValueConversationStore(kv)
    msgs = [
        Utterance(role="user", content="Can I get into medicine?", timestamp=T0),
        Utterance(
            role="assistant",
            content="With a z-score of 2.1 in Colombo...",
            route="sql",
            sources=("cutoffs-2023", "handbook"),
            timestamp=T0 + timedelta(seconds=3),
        ),
    ]
    store.upsert(_conv("a", title="Can I get into medicine?...", messages=msgs))

    raw = json.loads(kv.get(CONVERSATIONS_KEY))
    assert raw[0]["createdAt"] == "2024-05-01T08:30:00Z"
    assert raw[0]["messages"][1]["sources"] == ["cutoffs-2023", "handbook"]

    loaded = KeyValueConversationStore(kv).get("a")
    assert loaded.messages == msgs
    assert loaded.created_at == T0
    assert isinstance(loaded.messages[1].timestamp, datetime)


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        '{"id": "a"}',
        '[{"id": "a", "title": "t", "messages": [], "createdAt": "yesterday", "updatedAt": "2024-05-01T08:30:00Z"}]',
        '[{"id": "a", "title": "t", "messages": [{"role": "system", "content": "x"}], '
        '"createdAt": "2024-05-01T08:30:00Z", "updatedAt": "2024-05-01T08:30:00Z"}]',
    ],
)
def test_corrupted_payload_raises_storage_error(payload):
    store = KeyValueConversationStore(MemoryKeyValueStore({CONVERSATIONS_KEY: payload}))
    with pytest.raises(StorageError):
        store.list()


def test_write_over_corrupted_payload_starts_fresh():
    kv = MemoryKeyValueStore({CONVERSATIONS_KEY: "{broken"})
    store = KeyValueConversationStore(kv)
    store.upsert(_conv("a"))
    assert [c.id for c in store.list()] == ["a"]
