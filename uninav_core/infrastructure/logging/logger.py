"""JSON 行日志。

每条记录输出为一行 JSON，字段来源按优先级从低到高：

- 固定字段 ts / level / name / msg；
- log_context() 绑定的请求级上下文（trace_id、conversation_id 等），
  在同一个 asyncio 任务内对解码器、客户端的日志同样生效；
- 调用处通过 extra={"extra": {...}} 传入的字段。
"""

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator

from uninav_core.config.settings import settings


_context: ContextVar[Dict[str, Any]] = ContextVar("uninav_log_context", default={})

# 开启脱敏时只保留这些字段的原值，其余字符串字段截断
_SAFE_FIELDS = {"ts", "level", "name", "trace_id", "conversation_id", "code", "status", "route"}
_REDACT_LIMIT = 64


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """在 with 块内为所有日志记录附加上下文字段，可嵌套。"""

    merged = {**_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield merged
    finally:
        _context.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_context.get())


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self._redact = redact_content

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_context.get())
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        if self._redact:
            payload = {
                k: (v[:_REDACT_LIMIT] if isinstance(v, str) and k not in _SAFE_FIELDS else v)
                for k, v in payload.items()
            }
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("uninav_core")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "uninav.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter(redact_content=settings.log_redact_content))
    logger.addHandler(fh)
    return logger


logger = setup_logger()
