"""流式响应解码器。

后端以 SSE 风格逐行推送事件：

    data: {"content": "Hel"}
    data: {"content": "lo", "route": "vector", "sources": ["handbook.pdf"]}
    data: [DONE]

网络读取的分块边界与行边界无关：一个分块可能包含零到多个事件，
一个事件也可能被拆进多个分块（甚至拆在一个多字节 UTF-8 字符中间）。
解码器因此维护两层缓冲：

- 增量 UTF-8 解码器，保留被截断的多字节字符；
- 行缓冲，保留上一个分块末尾不完整的行，拼到下一个分块前面再切分。

一行只有在看到换行符之后才会被处理；源结束时剩余的半行按最后一行尽力处理。
"""

import codecs
import json
from typing import AsyncIterable, Callable, Optional, Tuple

from uninav_core.domain.exceptions import DecodeError
from uninav_core.domain.models import StreamResult
from uninav_core.infrastructure.logging.logger import logger


EVENT_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

DeltaSink = Callable[[str], None]


class StreamDecoder:
    """把字节流解码为文本增量，并在结束时返回一次汇总结果。

    每个 StreamDecoder 只用于一次请求。
    """

    def __init__(self, on_delta: Optional[DeltaSink] = None, encoding: str = "utf-8"):
        self._on_delta = on_delta
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._parts: list[str] = []
        self._result = StreamResult()
        self._finished = False

    async def decode(self, source: AsyncIterable[bytes]) -> StreamResult:
        """消费字节源直到结束标记或源耗尽，返回汇总结果。"""

        if self._finished:
            raise RuntimeError("StreamDecoder instances are single-use")
        async for chunk in source:
            if not chunk:
                continue
            if self.feed(chunk):
                return self._finalize(done=True)
        return self.close()

    def feed(self, chunk: bytes) -> bool:
        """喂入一个分块；读到结束标记时返回 True。"""

        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        # 最后一段没有换行符，留到下一个分块
        self._buffer = lines.pop()
        for line in lines:
            if self._handle_line(line):
                return True
        return False

    def close(self) -> StreamResult:
        """源已耗尽：冲刷解码器与行缓冲，然后完成。"""

        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        done = False
        for line in tail.split("\n"):
            if line and self._handle_line(line):
                done = True
                break
        return self._finalize(done=done)

    def _handle_line(self, line: str) -> bool:
        if line.endswith("\r"):
            line = line[:-1]
        if not line.startswith(EVENT_PREFIX):
            return False
        data = line[len(EVENT_PREFIX):]
        if data.startswith(" "):
            data = data[1:]
        if data == DONE_SENTINEL:
            return True
        try:
            content, route, sources = self._parse_payload(data)
        except DecodeError as e:
            logger.debug("Non-JSON stream payload, treating as text", extra={"extra": {"error": e.message}})
            content, route, sources = data, None, None
        if content:
            self._emit(content)
        if route:
            self._result.route = route
        if sources:
            self._result.sources = sources
        return False

    @staticmethod
    def _parse_payload(data: str) -> Tuple[Optional[str], Optional[str], Optional[Tuple[str, ...]]]:
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as e:
            raise DecodeError(code="STREAM_DECODE_ERROR", message=str(e))
        if not isinstance(parsed, dict):
            raise DecodeError(code="STREAM_DECODE_ERROR", message=f"payload is {type(parsed).__name__}, not an object")
        content = parsed.get("content")
        route = parsed.get("route")
        sources = parsed.get("sources")
        if content is not None and not isinstance(content, str):
            # 非字符串内容按 JSON 文本输出，不丢弃
            content = json.dumps(content, ensure_ascii=False)
        return (
            content,
            route if isinstance(route, str) else None,
            tuple(str(s) for s in sources) if isinstance(sources, list) else None,
        )

    def _emit(self, text: str) -> None:
        self._parts.append(text)
        self._result.increments += 1
        if self._on_delta is not None:
            self._on_delta(text)

    def _finalize(self, done: bool) -> StreamResult:
        self._finished = True
        self._result.full_text = "".join(self._parts)
        self._result.done = done
        return self._result
