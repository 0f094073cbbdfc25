"""统一的对话与请求数据模型。

本模块定义了会话编排、Provider 适配与本地存储之间共享的标准数据结构：

- Utterance: 会话中的一条消息（user/assistant），创建后不可变。
- ChatRequest: 发给后端 /chat 接口的请求体，使用 Pydantic 做参数校验。
- ChatReply: 非流式接口返回的完整回答。
- StreamResult: 流式接口解码结束后的汇总结果（全文 + 元数据）。
- StudentProfile: 学生档案，作为对话请求的上下文（分数、地区）。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


# 消息角色
Role = Literal["user", "assistant"]

# 后端回答所走的策略：结构化数据查询（sql）或知识库检索（vector）
Route = str

# 界面语言：英语 / 僧伽罗语 / 泰米尔语
Language = Literal["en", "si", "ta"]

LANGUAGES: Tuple[str, ...] = ("en", "si", "ta")

MAX_MESSAGE_CHARS = 2000


@dataclass(frozen=True)
class Utterance:
    """一条对话消息。

    - role: user 或 assistant。
    - content: 纯文本内容。
    - route: 仅 assistant 消息可能携带，表示后端使用的回答策略。
    - sources: 引用来源列表，按后端给出的顺序保存。
    - timestamp: 消息产生的时间（UTC）。
    """

    role: Role
    content: str
    route: Optional[Route] = None
    sources: Optional[Tuple[str, ...]] = None
    timestamp: Optional[datetime] = None


@dataclass
class StudentProfile:
    z_score: Optional[float] = None
    district: Optional[str] = None
    district_id: Optional[int] = None
    stream: Optional[str] = None


class ChatRequest(BaseModel):
    """一次对话请求。

    Provider 适配层负责把本结构序列化成 JSON 请求体；
    构造时即完成校验，校验失败由调用方转换为 ValidationError。
    """

    message: str = Field(min_length=1, max_length=MAX_MESSAGE_CHARS)
    language: Optional[Language] = None
    z_score: Optional[float] = Field(default=None, ge=0, le=4)
    district: Optional[str] = None
    district_id: Optional[int] = None
    stream: bool = False

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    def to_payload(self, stream: bool) -> dict:
        payload = self.model_dump(exclude_none=True)
        payload["stream"] = stream
        return payload


@dataclass
class ChatReply:
    """非流式接口的完整回答。"""

    message: str
    route: Optional[Route] = None
    sources: Optional[Tuple[str, ...]] = None


@dataclass
class StreamResult:
    """流式解码的汇总结果，每次请求新建，交给编排层后即丢弃。

    - full_text: 所有增量按到达顺序拼接的全文。
    - route / sources: 任意事件都可能携带，后到的非空值覆盖先前的值。
    - done: 是否读到了结束标记；流提前关闭时为 False，但结果仍然有效。
    """

    full_text: str = ""
    route: Optional[Route] = None
    sources: Optional[Tuple[str, ...]] = None
    done: bool = False
    increments: int = field(default=0, repr=False)
