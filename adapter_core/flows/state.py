"""State definition for the response-generation graph."""

from __future__ import annotations

from typing import Optional, Tuple, TypedDict

from adapter_core.domain.models import ConversationContext, UnifiedResponse


class EngineState(TypedDict, total=False):
    """State shared across LangGraph nodes.

    Each primary stage either fills its output field or records `failure`;
    the router sends any failure to the fallback node.
    """

    context: ConversationContext
    user_message: str
    has_tool_result: bool
    tool_result_text: str
    prompt: str
    raw_output: Optional[str]
    candidate: Optional[str]
    response: Optional[UnifiedResponse]
    failure: Optional[Tuple[str, str]]
    stage: str
