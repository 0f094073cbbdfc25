"""对话会话编排。

ChatSession 把会话存储与流式客户端串起来，每个会话同一时间只允许一个请求：

    idle --send()--> awaiting_reply --(完成/失败/取消)--> idle

用户消息在发请求之前就写入存储（乐观写入），即使回答没有到达也不会丢失；
回答完成后追加 assistant 消息并再次写入。
"""

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional
from uuid import uuid4

import pydantic

from uninav_core.config.settings import settings
from uninav_core.domain.conversation import DEFAULT_TITLE, Conversation, ConversationStore
from uninav_core.domain.exceptions import BusinessError, StorageError, ValidationError
from uninav_core.domain.models import ChatRequest, Language, StudentProfile, Utterance
from uninav_core.infrastructure.logging.logger import log_context, logger
from uninav_core.infrastructure.storage.preferences_store import PreferencesStore
from uninav_core.providers.base import ChatClient


SessionState = Literal["idle", "awaiting_reply"]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_conversation_id() -> str:
    """生成 conv_<毫秒时间戳>_<7 位 base36 随机串> 形式的会话 id。"""

    n = uuid4().int
    suffix = ""
    for _ in range(7):
        n, r = divmod(n, 36)
        suffix += _BASE36[r]
    return f"conv_{int(time.time() * 1000)}_{suffix}"


def derive_title(first_message: Utterance, max_chars: Optional[int] = None) -> str:
    limit = max_chars or settings.title_max_chars
    return first_message.content[:limit] + "..."


class ChatSession:
    def __init__(
        self,
        store: ConversationStore,
        client: ChatClient,
        preferences: Optional[PreferencesStore] = None,
        language: Optional[Language] = None,
    ):
        self._store = store
        self._client = client
        self._preferences = preferences
        self._language = language
        self._current: Optional[Conversation] = None
        self._state: SessionState = "idle"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current(self) -> Conversation:
        if self._current is None:
            return self.resume()
        return self._current

    def conversations(self) -> List[Conversation]:
        """侧边栏列表；存储不可读时返回空列表。"""

        try:
            return self._store.list()
        except StorageError as e:
            self._log(logging.WARNING, "Conversation list unreadable", {}, code=e.code, error=e.message)
            return []

    def resume(self) -> Conversation:
        """恢复上次的当前会话；找不到时新建一个。"""

        try:
            active_id = self._store.get_active_id()
            conv = self._store.get(active_id) if active_id else None
        except StorageError as e:
            self._log(logging.WARNING, "Stored session unreadable, starting fresh", {}, code=e.code, error=e.message)
            conv = None
        if conv is None:
            return self.start_new()
        self._current = conv
        return conv

    def start_new(self) -> Conversation:
        self._ensure_idle()
        now = _utcnow()
        conv = Conversation(id=new_conversation_id(), title=DEFAULT_TITLE, created_at=now, updated_at=now)
        self._current = conv
        self._persist(conv)
        self._set_active(conv.id)
        self._log(logging.INFO, "Created new conversation", {"conversation_id": conv.id})
        return conv

    def select_existing(self, conversation_id: str) -> Conversation:
        self._ensure_idle()
        try:
            conv = self._store.get(conversation_id)
        except StorageError as e:
            self._log(logging.WARNING, "Conversation lookup failed", {"conversation_id": conversation_id}, error=e.message)
            conv = None
        if conv is None:
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)
        self._current = conv
        self._set_active(conv.id)
        return conv

    def delete(self, conversation_id: str) -> None:
        is_current = (
            self._current is not None and self._current.id == conversation_id
        ) or self._stored_active_id() == conversation_id
        if is_current:
            self._ensure_idle()
        try:
            self._store.delete(conversation_id)
        except StorageError as e:
            self._log(logging.WARNING, "Delete failed", {"conversation_id": conversation_id}, error=e.message)
        if is_current:
            self.start_new()

    async def send(self, text: str, on_delta: Optional[Callable[[str], None]] = None) -> Utterance:
        """发送一条用户消息并等待流式回答完成，返回 assistant 消息。

        Raises:
            ValidationError: 消息为空/过长，或已有请求在进行中。
            TransportError: 网络或 HTTP 失败；用户消息仍然保留在会话中。
        """
        self._ensure_idle()
        request = self._build_request(text)
        conv = self.current
        with log_context(trace_id=f"tr-{uuid4().hex}", conversation_id=conv.id):
            user_msg = Utterance(role="user", content=request.message, timestamp=_utcnow())
            conv = self._append(conv, user_msg)
            self._state = "awaiting_reply"
            start_time = time.time()
            try:
                result = await self._client.stream_message(request, on_delta=on_delta)
            except BusinessError as e:
                self._log(logging.ERROR, "Chat request failed", {}, code=e.code, error=e.message)
                raise
            finally:
                self._state = "idle"

            assistant_msg = Utterance(
                role="assistant",
                content=result.full_text,
                route=result.route,
                sources=result.sources,
                timestamp=_utcnow(),
            )
            self._append(conv, assistant_msg)
            self._log(
                logging.INFO,
                "Completed chat step",
                {},
                elapsed_seconds=round(time.time() - start_time, 2),
                route=result.route,
                done=result.done,
            )
        return assistant_msg

    # ---- 内部方法 ----

    def _ensure_idle(self) -> None:
        if self._state != "idle":
            raise ValidationError(code="REQUEST_IN_FLIGHT", message="A reply is still in progress")

    def _build_request(self, text: str) -> ChatRequest:
        profile = self._profile()
        try:
            return ChatRequest(
                message=text,
                language=self._current_language(),
                z_score=profile.z_score if profile else None,
                district=profile.district if profile else None,
                district_id=profile.district_id if profile else None,
            )
        except pydantic.ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ValidationError(code="INVALID_REQUEST", message=e.errors()[0]["msg"], fields=fields)

    def _append(self, conv: Conversation, message: Utterance) -> Conversation:
        messages = list(conv.messages) + [message]
        title = conv.title
        if len(conv.messages) == 1 and len(messages) == 2:
            title = derive_title(messages[0])
        updated = replace(
            conv,
            messages=messages,
            title=title,
            updated_at=max(_utcnow(), conv.updated_at),
        )
        self._current = updated
        self._persist(updated)
        return updated

    def _persist(self, conv: Conversation) -> None:
        try:
            self._store.upsert(conv)
        except StorageError as e:
            self._log(logging.WARNING, "Failed to persist conversation", {"conversation_id": conv.id}, error=e.message)

    def _set_active(self, conversation_id: Optional[str]) -> None:
        try:
            self._store.set_active_id(conversation_id)
        except StorageError as e:
            self._log(logging.WARNING, "Failed to persist active conversation", {}, error=e.message)

    def _stored_active_id(self) -> Optional[str]:
        try:
            return self._store.get_active_id()
        except StorageError as e:
            self._log(logging.WARNING, "Active conversation id unreadable", {}, error=e.message)
            return None

    def _profile(self) -> Optional[StudentProfile]:
        if self._preferences is None:
            return None
        return self._preferences.get_profile()

    def _current_language(self) -> Language:
        if self._language:
            return self._language
        if self._preferences is not None:
            return self._preferences.get_language()
        return settings.default_language

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
