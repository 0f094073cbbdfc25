"""对外 API 服务模块。

提供简化的函数接口供上层应用（页面、命令行等）调用。
"""

from typing import Any, Callable, Dict, Optional

from uninav_core.agents.chat_session import ChatSession
from uninav_core.config.settings import settings
from uninav_core.domain.conversation import Conversation
from uninav_core.domain.exceptions import BusinessError
from uninav_core.domain.models import Utterance
from uninav_core.infrastructure.logging.logger import logger
from uninav_core.infrastructure.storage.conversation_store import KeyValueConversationStore
from uninav_core.infrastructure.storage.kv_store import JsonFileKeyValueStore
from uninav_core.infrastructure.storage.preferences_store import PreferencesStore
from uninav_core.providers import create_client


_session: Optional[ChatSession] = None


def get_default_session() -> ChatSession:
    """获取默认的 ChatSession 实例（单例），数据落在 settings.storage_root。"""
    global _session
    if _session is None:
        kv = JsonFileKeyValueStore(root=settings.storage_root)
        _session = ChatSession(
            store=KeyValueConversationStore(kv),
            client=create_client(),
            preferences=PreferencesStore(kv),
        )
    return _session


async def send_chat(
    user_input: str,
    on_delta: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """在当前会话中发送一条消息。

    Args:
        user_input: 用户输入内容
        on_delta: 文本增量回调（可选）

    Returns:
        包含会话ID、标题与助手消息的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    session = get_default_session()
    try:
        reply = await session.send(user_input, on_delta=on_delta)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "conversation_id": session.current.id,
            "error": str(e),
        }})
        raise
    conv = session.current
    return {
        "conversation_id": conv.id,
        "title": conv.title,
        "assistant_message": _message_to_dict(reply),
    }


def list_conversations() -> list[Dict[str, Any]]:
    """列出所有会话（最新插入的在前）。

    Returns:
        会话列表，每项包含 id, title, message_count, created_at, updated_at
    """
    session = get_default_session()
    return [_conversation_summary(c) for c in session.conversations()]


def get_conversation_messages(conversation_id: Optional[str] = None) -> list[Dict[str, Any]]:
    """获取会话的所有消息，默认取当前会话。"""
    session = get_default_session()
    if conversation_id is None:
        return [_message_to_dict(m) for m in session.current.messages]
    for conv in session.conversations():
        if conv.id == conversation_id:
            return [_message_to_dict(m) for m in conv.messages]
    raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)


def select_conversation(conversation_id: str) -> Dict[str, Any]:
    return _conversation_summary(get_default_session().select_existing(conversation_id))


def new_conversation() -> Dict[str, Any]:
    return _conversation_summary(get_default_session().start_new())


def delete_conversation(conversation_id: str) -> None:
    get_default_session().delete(conversation_id)


def _conversation_summary(c: Conversation) -> Dict[str, Any]:
    return {
        "id": c.id,
        "title": c.title,
        "message_count": len(c.messages),
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


def _message_to_dict(m: Utterance) -> Dict[str, Any]:
    return {
        "role": m.role,
        "content": m.content,
        "route": m.route,
        "sources": list(m.sources) if m.sources else None,
        "timestamp": m.timestamp.isoformat() if m.timestamp else None,
    }
