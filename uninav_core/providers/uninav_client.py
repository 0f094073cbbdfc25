"""UniNavigator 后端对话接口适配器。

- URL: {api_base_url}/chat
- 请求体: ChatRequest 的 JSON，stream 字段决定返回形式
- 非流式: 返回 {"message": ..., "route": ..., "sources": [...]}
- 流式: 逐行 "data: <json>"，以 "data: [DONE]" 结束，由 StreamDecoder 解码

非 2xx 响应可能携带 {"message": ...}（或 FastAPI 风格的 {"detail": ...}），
其中的文本作为 TransportError 的用户提示。
"""

import json
import time
from typing import Callable, Optional

import httpx

from uninav_core.config.settings import settings
from uninav_core.domain.exceptions import TransportError
from uninav_core.domain.models import ChatReply, ChatRequest, StreamResult
from uninav_core.infrastructure.logging.logger import logger
from uninav_core.providers.stream_decoder import StreamDecoder


DEFAULT_ERROR_MESSAGE = "Failed to send message"


class UniNavClient:
    """UniNavigator 对话后端客户端实现。"""

    name = "uninav"

    def __init__(self, cfg=settings):
        self._settings = cfg

    # ---- 非流式 ----

    async def send_message(self, req: ChatRequest) -> ChatReply:
        payload = req.to_payload(stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    self._chat_url(),
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.RequestError as e:
            raise TransportError(code="NETWORK_ERROR", message=str(e) or DEFAULT_ERROR_MESSAGE)
        if resp.status_code >= 400:
            raise self._status_error(resp.status_code, resp.content)
        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(code="BAD_RESPONSE", message=f"invalid JSON response: {e}", http_status=resp.status_code)
        return self._parse_reply(data)

    # ---- 流式 ----

    async def stream_message(
        self,
        req: ChatRequest,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> StreamResult:
        payload = req.to_payload(stream=True)
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    self._chat_url(),
                    json=payload,
                    headers={"Content-Type": "application/json", "Accept": "text/event-stream"},
                ) as resp:
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise self._status_error(resp.status_code, body)
                    decoder = StreamDecoder(on_delta=on_delta)
                    result = await decoder.decode(resp.aiter_bytes())
        except httpx.RequestError as e:
            raise TransportError(code="NETWORK_ERROR", message=str(e) or DEFAULT_ERROR_MESSAGE)
        logger.info(
            "Stream completed",
            extra={"extra": {
                "increments": result.increments,
                "chars": len(result.full_text),
                "route": result.route,
                "done": result.done,
                "elapsed_seconds": round(time.time() - start_time, 2),
            }},
        )
        return result

    # ---- 辅助方法 ----

    def _chat_url(self) -> str:
        return f"{self._settings.api_base_url.rstrip('/')}/chat"

    @staticmethod
    def _status_error(status_code: int, body: bytes) -> TransportError:
        message = DEFAULT_ERROR_MESSAGE
        try:
            data = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError):
            data = None
        if isinstance(data, dict):
            detail = data.get("message") or data.get("detail")
            if isinstance(detail, str) and detail:
                message = detail
        code = "RATE_LIMIT" if status_code == 429 else "API_ERROR"
        logger.warning("Chat request failed", extra={"extra": {"status": status_code, "code": code}})
        return TransportError(code=code, message=message, http_status=status_code)

    @staticmethod
    def _parse_reply(data) -> ChatReply:
        if not isinstance(data, dict) or not isinstance(data.get("message"), str):
            raise TransportError(code="BAD_RESPONSE", message="response has no message field")
        route = data.get("route")
        sources = data.get("sources")
        return ChatReply(
            message=data["message"],
            route=route if isinstance(route, str) and route else None,
            sources=tuple(str(s) for s in sources) if isinstance(sources, list) and sources else None,
        )
