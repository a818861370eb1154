"""High-level entry point for unified response generation."""

from __future__ import annotations

import time
from typing import Optional
from uuid import uuid4

from adapter_core.config.settings import settings
from adapter_core.domain.conversation import count_by_role
from adapter_core.domain.exceptions import BackendUnavailable
from adapter_core.domain.models import ConversationContext, UnifiedResponse
from adapter_core.flows.fallback import FallbackChain
from adapter_core.flows.graph import build_graph
from adapter_core.flows.state import EngineState
from adapter_core.infrastructure.logging.logger import logger
from adapter_core.providers.base import BackendClient


class ResponseEngine:
    """根据对话上下文生成 UnifiedResponse（tool_call / answer / chat）。

    后端客户端由调用方构造并注入，连接生命周期也由调用方负责。
    每次 generate 最多进行一次决策交换；失败时进入降级链，
    除 BackendUnavailable / SessionCreateFailure 外不会向外抛出异常。
    """

    def __init__(
        self,
        backend: BackendClient,
        config=None,
        fallback: Optional[FallbackChain] = None,
    ):
        cfg = config or settings
        self._backend = backend
        self._fallback = fallback or FallbackChain.default(backend, cfg.answer_response_timeout)
        self._graph = build_graph(
            backend,
            self._fallback,
            window_size=cfg.recent_window_size,
            response_timeout=cfg.response_timeout,
        )

    @property
    def backend(self) -> BackendClient:
        return self._backend

    def generate(self, context: ConversationContext) -> UnifiedResponse:
        if not self._backend.is_connected():
            raise BackendUnavailable()

        start_time = time.time()
        trace_id = f"tr-{uuid4().hex}"
        logger.info(
            "decision.start",
            extra={"extra": {
                "trace_id": trace_id,
                "messages": count_by_role(context.history),
                "tools": len(context.tools),
            }},
        )
        state: EngineState = {
            "context": context,
            "user_message": "",
            "has_tool_result": False,
            "tool_result_text": "",
            "prompt": "",
            "raw_output": None,
            "candidate": None,
            "response": None,
            "failure": None,
            "stage": "start",
        }
        result = self._graph.invoke(state)
        response = result["response"]
        logger.info(
            "decision.end",
            extra={"extra": {
                "trace_id": trace_id,
                "stage": result.get("stage"),
                "action": response.action,
                "elapsed_seconds": round(time.time() - start_time, 2),
            }},
        )
        return response
