"""基于键值存储的会话列表。

会话列表整体序列化为一个 JSON 数组，存放在单个键下：

- 新会话插入到列表头部，已有会话原地替换（位置不变）；
- 写入后截断到前 max_conversations 条，尾部多出的会话直接丢弃；
- 当前会话 id 单独存放在另一个键下，不校验它是否仍在列表中。

读取时逐条重建类型化记录（时间字段从 ISO 字符串还原），
任何结构不符都视为 StorageError。
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from uninav_core.config.settings import settings
from uninav_core.domain.conversation import Conversation, ConversationStore, KeyValueStore
from uninav_core.domain.exceptions import StorageError
from uninav_core.domain.models import Utterance
from uninav_core.infrastructure.logging.logger import logger


CONVERSATIONS_KEY = "uninavigator_conversations"
ACTIVE_CONVERSATION_KEY = "uninavigator_active_conversation"


class KeyValueConversationStore(ConversationStore):
    def __init__(self, kv: KeyValueStore, max_conversations: Optional[int] = None):
        self._kv = kv
        self._max = max_conversations or settings.max_conversations

    @property
    def capacity(self) -> int:
        return self._max

    def list(self) -> List[Conversation]:
        raw = self._kv.get(CONVERSATIONS_KEY)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(code="STORE_CORRUPTED", message=f"conversation list is not valid JSON: {e}")
        if not isinstance(data, list):
            raise StorageError(code="STORE_CORRUPTED", message="conversation list is not an array")
        return [_to_conversation(item) for item in data]

    def get(self, conversation_id: str) -> Optional[Conversation]:
        for conv in self.list():
            if conv.id == conversation_id:
                return conv
        return None

    def upsert(self, conversation: Conversation) -> None:
        conversations = self._load_for_write()
        for index, existing in enumerate(conversations):
            if existing.id == conversation.id:
                conversations[index] = conversation
                break
        else:
            conversations.insert(0, conversation)
        dropped = conversations[self._max:]
        if dropped:
            logger.info(
                "Evicted conversations over capacity",
                extra={"extra": {"evicted": [c.id for c in dropped], "capacity": self._max}},
            )
        self._write(conversations[: self._max])

    def delete(self, conversation_id: str) -> None:
        conversations = self._load_for_write()
        remaining = [c for c in conversations if c.id != conversation_id]
        if len(remaining) == len(conversations):
            return
        self._write(remaining)

    def get_active_id(self) -> Optional[str]:
        return self._kv.get(ACTIVE_CONVERSATION_KEY) or None

    def set_active_id(self, conversation_id: Optional[str]) -> None:
        if conversation_id:
            self._kv.set(ACTIVE_CONVERSATION_KEY, conversation_id)
        else:
            self._kv.remove(ACTIVE_CONVERSATION_KEY)

    def _load_for_write(self) -> List[Conversation]:
        try:
            return self.list()
        except StorageError as e:
            # 已有数据不可读时按空列表处理，本次写入会覆盖它
            logger.warning(
                "Conversation list unreadable, starting from empty",
                extra={"extra": {"code": e.code, "error": e.message}},
            )
            return []

    def _write(self, conversations: List[Conversation]) -> None:
        payload = json.dumps([_from_conversation(c) for c in conversations], ensure_ascii=False)
        self._kv.set(CONVERSATIONS_KEY, payload)


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_ts(value: Any, field_name: str) -> datetime:
    if not isinstance(value, str):
        raise StorageError(code="STORE_CORRUPTED", message=f"{field_name} is not a timestamp string")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise StorageError(code="STORE_CORRUPTED", message=f"{field_name}: {e}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _from_utterance(msg: Utterance) -> Dict[str, Any]:
    obj: Dict[str, Any] = {"role": msg.role, "content": msg.content}
    if msg.route is not None:
        obj["route"] = msg.route
    if msg.sources is not None:
        obj["sources"] = list(msg.sources)
    if msg.timestamp is not None:
        obj["timestamp"] = _format_ts(msg.timestamp)
    return obj


def _from_conversation(conv: Conversation) -> Dict[str, Any]:
    return {
        "id": conv.id,
        "title": conv.title,
        "messages": [_from_utterance(m) for m in conv.messages],
        "createdAt": _format_ts(conv.created_at),
        "updatedAt": _format_ts(conv.updated_at),
    }


def _to_utterance(data: Any) -> Utterance:
    if not isinstance(data, dict):
        raise StorageError(code="STORE_CORRUPTED", message="message record is not an object")
    role = data.get("role")
    if role not in ("user", "assistant"):
        raise StorageError(code="STORE_CORRUPTED", message=f"unknown message role: {role!r}")
    content = data.get("content")
    if not isinstance(content, str):
        raise StorageError(code="STORE_CORRUPTED", message="message content is not a string")
    route = data.get("route")
    if route is not None and not isinstance(route, str):
        raise StorageError(code="STORE_CORRUPTED", message="message route is not a string")
    sources = data.get("sources")
    if sources is not None:
        if not isinstance(sources, list) or not all(isinstance(s, str) for s in sources):
            raise StorageError(code="STORE_CORRUPTED", message="message sources is not a list of strings")
        sources = tuple(sources)
    timestamp = data.get("timestamp")
    return Utterance(
        role=role,
        content=content,
        route=route,
        sources=sources,
        timestamp=_parse_ts(timestamp, "timestamp") if timestamp is not None else None,
    )


def _to_conversation(data: Any) -> Conversation:
    if not isinstance(data, dict):
        raise StorageError(code="STORE_CORRUPTED", message="conversation record is not an object")
    cid = data.get("id")
    if not isinstance(cid, str) or not cid:
        raise StorageError(code="STORE_CORRUPTED", message="conversation id missing")
    messages = data.get("messages")
    if not isinstance(messages, list):
        raise StorageError(code="STORE_CORRUPTED", message=f"conversation {cid} has no message list")
    title = data.get("title")
    return Conversation(
        id=cid,
        title=title if isinstance(title, str) else "",
        created_at=_parse_ts(data.get("createdAt"), "createdAt"),
        updated_at=_parse_ts(data.get("updatedAt"), "updatedAt"),
        messages=[_to_utterance(m) for m in messages],
    )
