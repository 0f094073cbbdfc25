"""Provider 抽象接口。

上层 ChatSession 不直接依赖 HTTP 库，而是依赖此协议：

- 负责：将 ChatRequest 转成具体 API 请求，并把响应解析为 ChatReply / StreamResult。
- 流式调用通过 on_delta 回调逐段交付文本增量，最后返回一次汇总结果。

这样在测试中可以用假的客户端替换真实网络调用。
"""

from typing import Callable, Optional, Protocol

from uninav_core.domain.models import ChatReply, ChatRequest, StreamResult


class ChatClient(Protocol):
    """对话后端客户端协议。"""

    name: str

    async def send_message(self, req: ChatRequest) -> ChatReply:
        ...

    async def stream_message(
        self,
        req: ChatRequest,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> StreamResult:
        """执行一次流式对话调用，增量交给 on_delta，结束后返回汇总。"""

        ...
