"""对外 API 服务模块。

把一次 Ollama chat 请求串成：请求校验 → 构建上下文 → 响应引擎 → 工具名后校验
→ 线格式映射，并把可暴露的业务异常转换为错误响应。
"""

import time
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from adapter_core.api.wire import error_to_wire, to_wire
from adapter_core.domain.conversation import build_context
from adapter_core.domain.exceptions import BusinessError, ValidationError
from adapter_core.domain.models import ToolCallResponse, ToolDefinition, UnifiedResponse
from adapter_core.flows.runner import ResponseEngine
from adapter_core.infrastructure.logging.logger import logger

UNKNOWN_TOOL = "unknown"


def validate_tool_choice(response: UnifiedResponse, tools: Iterable[ToolDefinition]) -> UnifiedResponse:
    """目录中不存在的工具名统一改写为 unknown（参数清空）。"""

    if not isinstance(response, ToolCallResponse) or response.tool_name == UNKNOWN_TOOL:
        return response
    if response.tool_name in {t.name for t in tools}:
        return response
    logger.warning("Unknown tool selected", extra={"extra": {"tool_name": response.tool_name}})
    return ToolCallResponse(tool_name=UNKNOWN_TOOL, arguments={})


class ChatService:
    def __init__(self, engine: ResponseEngine, default_model: str):
        self._engine = engine
        self._default_model = default_model

    def handle_chat(self, request: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """处理一次 chat 请求，返回 (HTTP 状态码, 响应体)。

        Args:
            request: Ollama chat 请求（model / messages / tools ...）

        Returns:
            成功时为 Ollama chat 响应；校验失败为 `{"error": ...}`（400）；
            后端不可用或会话创建失败为错误形态的 chat 响应。
        """
        start_time = time.time()
        model = request.get("model") or self._default_model
        messages = request.get("messages") or []
        logger.info(
            "Received chat request",
            extra={"extra": {"model": model, "message_count": len(messages), "stream": request.get("stream")}},
        )
        try:
            response = self._generate(messages, request.get("tools"))
        except ValidationError as e:
            logger.warning("Rejected chat request", extra={"extra": {"code": e.code, "error": e.message}})
            return e.http_status, {"error": e.message}
        except BusinessError as e:
            logger.error(f"Chat failed: {e}", extra={"extra": {"code": e.code, "model": model}})
            return e.http_status, error_to_wire(e, model)

        elapsed_ms = int((time.time() - start_time) * 1000)
        body = to_wire(response, model, elapsed_ms)
        logger.info(
            "Sending chat response",
            extra={"extra": {"action": response.action, "elapsed_ms": elapsed_ms}},
        )
        return 200, body

    def _generate(self, messages, tools: Optional[Iterable[Mapping[str, Any]]]) -> UnifiedResponse:
        if not messages:
            raise ValidationError(code="EMPTY_MESSAGES", message="messages field is required and must not be empty")
        context = build_context(messages, tools)
        if not any(m.role == "user" for m in context.history):
            raise ValidationError(code="NO_USER_MESSAGE", message="At least one user message is required")
        response = self._engine.generate(context)
        return validate_tool_choice(response, context.tools)
