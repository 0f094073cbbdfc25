"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 conversation_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class TransportError(BusinessError):
    """网络或 HTTP 层错误：连接失败、超时、非 2xx 响应、流读取中断。

    直接提示给用户，不自动重试。
    """


class DecodeError(BusinessError):
    """单条流事件无法按结构化数据解析。

    只在解码器内部抛出并被吸收，降级为纯文本增量。
    """


class StorageError(BusinessError):
    """本地键值存储读写失败或存量数据损坏。

    调用方应按“没有历史状态”处理，而不是中断交互。
    """


class ValidationError(BusinessError):
    """参数校验失败，在发起任何网络请求之前抛出。"""
