import asyncio

import pytest

from uninav_core.agents.chat_session import ChatSession
from uninav_core.api import service
from uninav_core.domain.exceptions import BusinessError
from uninav_core.domain.models import StreamResult
from uninav_core.infrastructure.storage.conversation_store import KeyValueConversationStore
from uninav_core.infrastructure.storage.kv_store import MemoryKeyValueStore


class EchoClient:
    name = "echo"

    async def send_message(self, req):
        raise AssertionError("send_message should not be called")

    async def stream_message(self, req, on_delta=None):
        if on_delta:
            on_delta(req.message)
        return StreamResult(full_text=f"echo: {req.message}", route="vector", sources=("faq",), done=True)


@pytest.fixture
def session(monkeypatch):
    s = ChatSession(store=KeyValueConversationStore(MemoryKeyValueStore()), client=EchoClient())
    monkeypatch.setattr(service, "_session", s)
    return s


def test_send_chat_and_list(session):
    deltas = []
    out = asyncio.run(service.send_chat("What is the cutoff for IT?", on_delta=deltas.append))

    assert deltas == ["What is the cutoff for IT?"]
    assert out["assistant_message"]["content"] == "echo: What is the cutoff for IT?"
    assert out["assistant_message"]["sources"] == ["faq"]
    assert out["title"] == "What is the cutoff for IT?..."

    listed = service.list_conversations()
    assert [c["id"] for c in listed] == [out["conversation_id"]]
    assert listed[0]["message_count"] == 2
    messages = service.get_conversation_messages(out["conversation_id"])
    assert [m["role"] for m in messages] == ["user", "assistant"]


def test_new_select_delete(session):
    first = service.new_conversation()
    second = service.new_conversation()
    assert service.select_conversation(first["id"])["id"] == first["id"]
    service.delete_conversation(first["id"])
    ids = [c["id"] for c in service.list_conversations()]
    assert first["id"] not in ids
    assert second["id"] in ids
    assert session.current.id != first["id"]
    with pytest.raises(BusinessError):
        service.get_conversation_messages(first["id"])
