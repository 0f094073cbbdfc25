"""UniNavigator Core 顶层包。

该包提供招生助手“对话向导”的核心实现，
包括配置加载、领域模型、流式响应解码、后端客户端、
本地会话存储与会话编排等能力。
"""

from uninav_core.agents.chat_session import ChatSession

__all__ = ["ChatSession"]
