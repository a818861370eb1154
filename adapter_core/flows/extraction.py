"""从模型自由文本中提取并校验决策 JSON。"""

from __future__ import annotations

import json
import re
from typing import List, Tuple

from adapter_core.domain.exceptions import MalformedModelOutput
from adapter_core.domain.models import (
    AnswerResponse,
    ChatResponse,
    ToolCallResponse,
    UnifiedResponse,
)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?")

ACTIONS = ("tool_call", "answer", "chat")


def strip_code_fences(text: str) -> str:
    """去掉 Markdown 代码块包裹（```json ... ```）。"""

    return _FENCE_RE.sub("", text.strip()).strip()


def find_json_objects(text: str) -> List[Tuple[int, int]]:
    """用括号配对扫描找出所有顶层 `{...}` 片段，返回 (start, end) 列表。

    扫描会跳过 JSON 字符串字面量中的括号与转义字符。
    文本结束时仍未闭合的 `{` 视为普通字符，从它之后重新扫描。
    """

    spans: List[Tuple[int, int]] = []
    pos = 0
    while pos < len(text):
        unclosed = _scan(text, pos, spans)
        if unclosed < 0:
            break
        pos = unclosed + 1
    return spans


def _scan(text: str, pos: int, spans: List[Tuple[int, int]]) -> int:
    """从 pos 开始扫描并追加配平片段；返回未闭合对象的起点，全部配平时返回 -1。"""

    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i in range(pos, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append((start, i + 1))
    return start if depth > 0 else -1


def extract_json_object(text: str) -> Tuple[str, int]:
    """返回第一个完整的 JSON 对象文本以及找到的对象总数。

    找不到配平的对象时抛出 MalformedModelOutput。
    """

    cleaned = strip_code_fences(text)
    spans = find_json_objects(cleaned)
    if not spans:
        raise MalformedModelOutput(code="MALFORMED_OUTPUT", message="No JSON object in model output")
    start, end = spans[0]
    return cleaned[start:end], len(spans)


def parse_unified_response(candidate: str) -> UnifiedResponse:
    """解析并校验决策 JSON，任何缺失/非法字段都视为 MalformedModelOutput。"""

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(code="MALFORMED_OUTPUT", message=f"Invalid JSON: {e.msg}")
    if not isinstance(payload, dict):
        raise MalformedModelOutput(code="MALFORMED_OUTPUT", message="Decision is not a JSON object")

    action = payload.get("action")
    if action not in ACTIONS:
        raise MalformedModelOutput(code="MALFORMED_OUTPUT", message=f"Invalid response action: {action}")

    if action == "tool_call":
        tool_name = payload.get("tool_name")
        if not isinstance(tool_name, str) or not tool_name.strip():
            raise MalformedModelOutput(code="MALFORMED_OUTPUT", message="tool_call without tool_name")
        arguments = payload.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise MalformedModelOutput(code="MALFORMED_OUTPUT", message="tool_call arguments must be an object")
        return ToolCallResponse(tool_name=tool_name.strip(), arguments=arguments)

    content = payload.get("content")
    if not isinstance(content, str):
        raise MalformedModelOutput(code="MALFORMED_OUTPUT", message=f"{action} without string content")
    if action == "answer":
        return AnswerResponse(content=content)
    return ChatResponse(content=content)
