"""对话上下文构建与窗口函数。

- build_context: 把 Ollama 风格的原始消息/工具列表拆分为 system 上下文、
  对话历史与工具目录。
- last_user_message / recent_window / count_by_role: 对历史做只读的有界视图，
  用于拼装决策 prompt 和日志。

这里的函数都是无状态的纯函数，不会修改输入。
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .models import (
    ConversationContext,
    ConversationHistory,
    ConversationMessage,
    JsonObject,
    ToolCall,
    ToolDefinition,
    ToolParameter,
)

_ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


def build_context(
    messages: Iterable[Mapping[str, Any]],
    tools: Optional[Iterable[Mapping[str, Any]]] = None,
) -> ConversationContext:
    """拆分原始消息为 system 上下文 + 对话历史，并解析工具目录。

    system 消息按出现顺序以换行拼接；其余消息（包括 assistant 与 tool）
    全部原样保留，顺序不变。tools 缺失时得到空目录。
    """

    system_parts: List[str] = []
    history: List[ConversationMessage] = []
    for raw in messages:
        message = parse_message(raw)
        if message.role == "system":
            system_parts.append(message.content)
        else:
            history.append(message)
    return ConversationContext(
        system_context="\n".join(system_parts).strip(),
        history=tuple(history),
        tools=tuple(parse_tool(t) for t in (tools or [])),
    )


def parse_message(raw: Mapping[str, Any]) -> ConversationMessage:
    """将一条 Ollama 消息转换为 ConversationMessage。"""

    calls: List[ToolCall] = []
    for call in raw.get("tool_calls") or []:
        func = call.get("function") or {}
        calls.append(
            ToolCall(
                name=func.get("name") or call.get("name") or "",
                arguments=_parse_arguments(func.get("arguments")),
            )
        )
    return ConversationMessage(
        role=raw.get("role") or "user",
        content=raw.get("content") or "",
        tool_calls=tuple(calls) or None,
    )


def parse_tool(raw: Mapping[str, Any]) -> ToolDefinition:
    """将 Ollama function tool 描述转换为 ToolDefinition。"""

    func = raw.get("function") or raw
    schema = func.get("parameters") or {}
    required = set(schema.get("required") or [])
    params: Dict[str, ToolParameter] = {}
    for name, prop in (schema.get("properties") or {}).items():
        prop = prop or {}
        items = prop.get("items") or {}
        params[name] = ToolParameter(
            name=name,
            type=prop.get("type") or "any",
            required=name in required,
            description=prop.get("description") or "",
            item_type=items.get("type") if isinstance(items, dict) else None,
        )
    return ToolDefinition(
        name=func.get("name") or "",
        description=func.get("description") or "",
        parameters=params,
    )


def _parse_arguments(raw: Any) -> JsonObject:
    """解析工具调用的 arguments 字段。

    Ollama 客户端通常直接发送对象；兼容部分客户端发送 JSON 字符串的情况，
    解析失败时保留原始字符串到 `_raw`，避免信息丢失。
    """

    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"_raw": raw}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def last_user_message(history: ConversationHistory) -> str:
    """返回最近一条 user 消息的内容；没有 user 消息时返回空字符串。"""

    for message in reversed(history):
        if message.role == "user":
            return message.content or ""
    return ""


def recent_window(
    history: ConversationHistory,
    max_messages: int = 10,
    include_tool_results: bool = False,
) -> str:
    """把最近 max_messages 条消息渲染为逐行文本。

    单轮对话（len <= 1）不需要窗口，直接返回空字符串。
    assistant 发起的工具调用渲染为 `Assistant: [Executed Name({...})]`；
    tool 消息仅在 include_tool_results 时以原始内容输出。
    """

    if len(history) <= 1:
        return ""
    lines = [_render_line(m, include_tool_results) for m in history[-max_messages:]]
    return "\n".join(line for line in lines if line)


def _render_line(message: ConversationMessage, include_tool_results: bool) -> str:
    if message.role == "assistant" and message.tool_calls:
        call = message.tool_calls[0]
        args = json.dumps(call.arguments, ensure_ascii=False, separators=(",", ":"))
        return f"Assistant: [Executed {call.name}({args})]"
    if message.role in _ROLE_LABELS:
        return f"{_ROLE_LABELS[message.role]}: {message.content}" if message.content else ""
    if message.role == "tool" and include_tool_results:
        return message.content
    return ""


def count_by_role(history: ConversationHistory) -> Dict[str, int]:
    """按角色统计消息数量，主要用于日志。"""

    counts = {"user": 0, "assistant": 0, "tool": 0, "total": len(history)}
    for message in history:
        if message.role in counts:
            counts[message.role] += 1
    return counts


def split_last_tool_result(history: ConversationHistory) -> Tuple[bool, str]:
    """检查历史末尾是否为工具结果，返回 (has_tool_result, 有效结果文本)。

    工具结果若是带 `result` 字段的 JSON 对象，则取该字段的值；
    否则使用原始内容。
    """

    if not history or history[-1].role != "tool":
        return False, ""
    content = history[-1].content or ""
    try:
        payload = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return True, content
    if isinstance(payload, dict) and "result" in payload:
        result = payload["result"]
        if isinstance(result, str):
            return True, result
        return True, json.dumps(result, ensure_ascii=False, separators=(",", ":"))
    return True, content
