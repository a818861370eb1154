"""后端客户端抽象接口。

响应引擎不直接依赖具体后端的 HTTP 细节，而是依赖此协议：

- 每种会话式后端实现一个 BackendClient（如 OpencodeClient）。
- 负责：执行一次完整的 create → submit → poll → delete 交换，
  并把助手文本以 ExchangeResult 返回。

连接的生命周期（open/close）由调用方显式管理。
"""

from typing import Protocol

from adapter_core.domain.models import ExchangeResult


class BackendClient(Protocol):
    """会话式后端客户端协议。

    实现者需要提供：
    - name: 后端名称，用于日志。
    - is_connected(): 客户端是否已 open。
    - exchange(...): 执行一次 prompt/response 交换。
    """

    name: str

    def is_connected(self) -> bool:
        ...

    def exchange(
        self,
        system_prompt: str,
        user_text: str,
        *,
        title: str,
        response_timeout: float,
    ) -> ExchangeResult:
        ...
