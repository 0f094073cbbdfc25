import dataclasses
from datetime import datetime, timezone

import pydantic
import pytest

from uninav_core.domain.conversation import Conversation
from uninav_core.domain.models import ChatRequest, Utterance


def test_models_exist():
    now = datetime.now(timezone.utc)
    msg = Utterance(role="user", content="hi", timestamp=now)
    assert msg.role == "user"
    conv = Conversation(id="c1", title="t", created_at=now, updated_at=now)
    assert conv.messages == []
    with pytest.raises(dataclasses.FrozenInstanceError):
        msg.content = "changed"


def test_chat_request_validation():
    req = ChatRequest(message="  hello  ", language="en", z_score=1.2)
    assert req.message == "hello"
    assert req.to_payload(stream=True) == {"message": "hello", "language": "en", "z_score": 1.2, "stream": True}
    with pytest.raises(pydantic.ValidationError):
        ChatRequest(message="hi", z_score=4.5)
    with pytest.raises(pydantic.ValidationError):
        ChatRequest(message="hi", language="fr")
