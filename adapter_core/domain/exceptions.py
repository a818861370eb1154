"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 API 层统一捕获并转换为 Ollama 风格的错误响应。

分两类：
- 直接暴露给调用方的错误：ValidationError / BackendUnavailable / SessionCreateFailure。
- 单次会话交换中的错误（ExchangeError 及其子类）：由响应引擎的降级链吸收，
  调用方永远不会直接看到。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "SESSION_CREATE_FAILED"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 session_id、timeout 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """请求或配置校验失败，例如对话中没有任何 user 消息。"""


class BackendUnavailable(BusinessError):
    """后端客户端尚未连接（未调用 open() 或已 close()）。"""

    def __init__(self, message: str = "OpenCode client is not connected", **extra):
        super().__init__(code="BACKEND_UNAVAILABLE", message=message, http_status=503, **extra)


class SessionCreateFailure(BusinessError):
    """后端无法分配会话，本次交换无法开始，不进入降级链。"""

    def __init__(self, message: str = "Failed to create OpenCode session", **extra):
        super().__init__(code="SESSION_CREATE_FAILED", message=message, http_status=502, **extra)


class ExchangeError(BusinessError):
    """会话交换过程中的可降级错误基类。"""


class NetworkError(ExchangeError):
    """网络层错误，例如连接失败、读取中断等。"""


class ApiError(ExchangeError):
    """后端返回非 2xx 响应或无法解析的响应体。"""


class SubmissionTimeout(ExchangeError):
    """提交 prompt 的调用本身超时（与生成耗时无关）。"""


class ResponseTimeout(ExchangeError):
    """在响应超时时间内没有轮询到助手文本。"""


class MalformedModelOutput(ExchangeError):
    """模型输出中找不到合法的决策 JSON。"""
