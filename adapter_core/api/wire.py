"""Ollama 线格式适配。

纯映射函数：把 UnifiedResponse / 异常转换为 Ollama `/api/chat` 的响应结构，
以及 `/api/tags`、`/api/show`、`/api/version` 的静态元数据。不持有状态，不做 I/O。

与 OpenAI 的差异：
- tool_calls[].function.arguments 是对象，不是 JSON 字符串；
- tool_calls 没有 id 字段；
- 耗时字段单位为纳秒。
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from adapter_core.domain.models import ToolCallResponse, UnifiedResponse

NS_PER_MS = 1_000_000
PACKAGE_VERSION = "0.1.0"

MODEL_DETAILS = {
    "format": "gguf",
    "family": "llama",
    "families": ["llama"],
    "parameter_size": "70B",
    "quantization_level": "Q4_0",
}


def _timestamp(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")


def to_wire_message(response: UnifiedResponse) -> Dict[str, Any]:
    if isinstance(response, ToolCallResponse):
        return {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"function": {"name": response.tool_name, "arguments": dict(response.arguments)}}
            ],
        }
    return {"role": "assistant", "content": response.content}


def to_wire(
    response: UnifiedResponse,
    model: str,
    elapsed_ms: int,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """UnifiedResponse → Ollama chat 响应。"""

    duration_ns = int(elapsed_ms) * NS_PER_MS
    return {
        "model": model,
        "created_at": _timestamp(now),
        "message": to_wire_message(response),
        "done": True,
        "done_reason": "stop",
        "total_duration": duration_ns,
        "eval_count": 1,
        "eval_duration": duration_ns,
    }


def error_to_wire(error: Exception, model: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    message = getattr(error, "message", None) or str(error) or "Internal server error"
    return {
        "model": model,
        "created_at": _timestamp(now),
        "message": {"role": "assistant", "content": f"Error: {message}"},
        "done": True,
        "done_reason": "stop",
        "total_duration": 0,
    }


def tags_payload(model: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "models": [
            {
                "name": model,
                "model": model,
                "modified_at": _timestamp(now),
                "size": 0,
                "digest": "ollama-opencode-adapter",
                "details": dict(MODEL_DETAILS),
            }
        ]
    }


def show_payload() -> Dict[str, Any]:
    return {
        "modelfile": "# ollama-opencode adapter model\nFROM ollama-opencode-adapter",
        "parameters": "temperature 0.7",
        "template": "{{ .System }}\n{{ .Prompt }}",
        "details": dict(MODEL_DETAILS),
    }


def version_payload() -> Dict[str, str]:
    return {"version": PACKAGE_VERSION}
