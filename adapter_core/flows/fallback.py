"""决策失败时的降级链。

每个策略接收同一个 FallbackInput，返回 UnifiedResponse 或 None（表示不适用），
FallbackChain 按顺序尝试，第一个给出结果的策略胜出；全部不适用时返回
按用户语言选择的致歉对话，因此降级链总能给出一个合法结果。

顺序：
1. fallback_answer: 有工具结果时，用一个更窄的 prompt 让模型生成 1~2 句回答。
2. fallback_tool_call: 查询类问题且目录中有 context/status/query 类工具时，直接调用它。
3. fallback_chat: 致歉。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from adapter_core.domain.exceptions import BackendUnavailable
from adapter_core.domain.models import (
    AnswerResponse,
    ChatResponse,
    ToolCallResponse,
    ToolDefinition,
    UnifiedResponse,
)
from adapter_core.infrastructure.logging.logger import logger
from adapter_core.prompts import render_prompt
from adapter_core.providers.base import BackendClient


@dataclass(frozen=True)
class FallbackInput:
    """降级策略所需的请求信息（只读）。"""

    system_context: str
    user_message: str
    has_tool_result: bool
    tool_result_text: str
    tools: Tuple[ToolDefinition, ...]


FallbackStrategy = Callable[[FallbackInput], Optional[UnifiedResponse]]

QUERY_PATTERNS = [
    re.compile(r"是.*嗎"),
    re.compile(r"現在.*是"),
    re.compile(r"什麼.*狀態"),
    re.compile(r"^請問"),
    re.compile(r"^is\s", re.IGNORECASE),
    re.compile(r"^are\s", re.IGNORECASE),
    re.compile(r"\bstatus\b", re.IGNORECASE),
    re.compile(r"\bstate\b", re.IGNORECASE),
    re.compile(r"^what", re.IGNORECASE),
]

# 按优先级匹配查询类工具名
CONTEXT_TOOL_HINTS = ("context", "status", "query")
PREFERRED_CONTEXT_TOOL = "GetLiveContext"

_KANA_RE = re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")
_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")

FALLBACK_MESSAGES = {
    "ja": "申し訳ございませんが、現在このリクエストを処理できません。",
    "zh": "我現在無法處理這個請求，請稍後再試。",
    "en": "I'm unable to process this request right now. Please try again later.",
}


def is_query_request(text: str) -> bool:
    """用户消息是否像一个信息查询（中英文疑问句式）。"""

    return any(p.search(text) for p in QUERY_PATTERNS)


def find_context_tool(tools: Sequence[ToolDefinition]) -> Optional[str]:
    """在工具目录中找一个 context/status/query 类工具。"""

    names = [t.name for t in tools if t.name]
    if PREFERRED_CONTEXT_TOOL in names:
        return PREFERRED_CONTEXT_TOOL
    for hint in CONTEXT_TOOL_HINTS:
        for name in names:
            if hint in name.lower():
                return name
    return None


def detect_script(text: str) -> str:
    """根据 Unicode 区段粗略判断语言：假名 → ja，汉字 → zh，否则 en。"""

    if _KANA_RE.search(text):
        return "ja"
    if _CJK_RE.search(text):
        return "zh"
    return "en"


def apology_response(user_message: str) -> ChatResponse:
    return ChatResponse(content=FALLBACK_MESSAGES[detect_script(user_message)])


class AnswerFromToolResult:
    """根据工具结果生成简短回答。

    二次请求失败时直接使用工具结果文本作为回答；
    只有工具结果为空时才返回 None，交给后续策略。
    """

    name = "fallback_answer"

    def __init__(self, backend: BackendClient, response_timeout: float):
        self._backend = backend
        self._response_timeout = response_timeout

    def __call__(self, data: FallbackInput) -> Optional[UnifiedResponse]:
        if not data.has_tool_result:
            return None
        prompt = render_prompt(
            "answer_from_tool_result",
            system_context=data.system_context,
            user_message=data.user_message,
            tool_result=data.tool_result_text,
        )
        content = ""
        try:
            result = self._backend.exchange(
                prompt,
                data.user_message or data.tool_result_text,
                title="generate-answer",
                response_timeout=self._response_timeout,
            )
            content = (result.content or "").strip()
        except BackendUnavailable:
            raise
        except Exception as exc:
            # 二次请求的任何失败（含会话创建失败）都退回到工具结果原文
            logger.warning(
                "Answer generation from tool result failed",
                extra={"extra": {"code": getattr(exc, "code", type(exc).__name__), "error": str(exc)}},
            )
        if content:
            return AnswerResponse(content=content)
        raw = data.tool_result_text.strip()
        return AnswerResponse(content=raw) if raw else None


class ContextToolCall:
    """查询类问题直接调用目录中的 context 类工具（参数为空）。"""

    name = "fallback_tool_call"

    def __call__(self, data: FallbackInput) -> Optional[UnifiedResponse]:
        if not is_query_request(data.user_message):
            return None
        tool_name = find_context_tool(data.tools)
        if tool_name is None:
            return None
        return ToolCallResponse(tool_name=tool_name, arguments={})


class FallbackChain:
    """按顺序组合降级策略，保证总能返回一个 UnifiedResponse。"""

    final_stage = "fallback_chat"

    def __init__(self, strategies: List[FallbackStrategy]):
        self._strategies = list(strategies)

    @classmethod
    def default(cls, backend: BackendClient, answer_timeout: float) -> "FallbackChain":
        return cls([AnswerFromToolResult(backend, answer_timeout), ContextToolCall()])

    def run(self, data: FallbackInput) -> Tuple[str, UnifiedResponse]:
        """返回 (命中的策略名, 响应)。"""

        for strategy in self._strategies:
            stage = getattr(strategy, "name", getattr(strategy, "__name__", "fallback"))
            response = strategy(data)
            if response is not None:
                logger.info("Fallback strategy applied", extra={"extra": {"stage": stage, "action": response.action}})
                return stage, response
        logger.info("Fallback strategy applied", extra={"extra": {"stage": self.final_stage, "action": "chat"}})
        return self.final_stage, apology_response(data.user_message)
