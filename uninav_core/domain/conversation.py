from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from .models import Utterance


DEFAULT_TITLE = "New Conversation"


@dataclass
class Conversation:
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    messages: List[Utterance] = field(default_factory=list)


class KeyValueStore(Protocol):
    """持久化键值存储能力，值均为字符串。"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class ConversationStore(Protocol):
    def list(self) -> List[Conversation]:
        ...

    def get(self, conversation_id: str) -> Optional[Conversation]:
        ...

    def upsert(self, conversation: Conversation) -> None:
        ...

    def delete(self, conversation_id: str) -> None:
        ...

    def get_active_id(self) -> Optional[str]:
        ...

    def set_active_id(self, conversation_id: Optional[str]) -> None:
        ...
