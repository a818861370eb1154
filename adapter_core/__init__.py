"""Adapter Core 顶层包。

该包把只支持会话式自由文本对话的 OpenCode 后端包装成 Ollama 兼容的
工具调用接口，包括配置加载、领域模型、会话通信层、统一响应引擎
（决策状态机与降级链）以及线格式适配与 HTTP 服务。
"""

from adapter_core.flows.runner import ResponseEngine
from adapter_core.providers.opencode_client import OpencodeClient

__all__ = ["ResponseEngine", "OpencodeClient"]
