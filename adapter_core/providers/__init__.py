"""后端集成层。

该包下的模块负责：
- 定义后端客户端抽象接口 (base)。
- 提供 OpenCode 会话式后端的具体实现 (opencode_client)。
"""

from adapter_core.config.settings import settings
from adapter_core.providers.base import BackendClient
from adapter_core.providers.opencode_client import OpencodeClient


def create_backend(config=None) -> OpencodeClient:
    """根据配置创建（尚未 open 的）后端客户端，默认使用全局 settings。"""

    return OpencodeClient(config or settings)


__all__ = ["BackendClient", "OpencodeClient", "create_backend"]
