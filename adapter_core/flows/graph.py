"""LangGraph construction and node implementations for unified response generation.

build_prompt → exchange → extract → validate → END
any primary stage failure → fallback → END
"""

from __future__ import annotations

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from adapter_core.domain.conversation import (
    last_user_message,
    recent_window,
    split_last_tool_result,
)
from adapter_core.domain.exceptions import (
    BackendUnavailable,
    BusinessError,
    MalformedModelOutput,
    SessionCreateFailure,
)
from adapter_core.flows.extraction import extract_json_object, parse_unified_response
from adapter_core.flows.fallback import FallbackChain, FallbackInput
from adapter_core.flows.state import EngineState
from adapter_core.infrastructure.logging.logger import logger
from adapter_core.prompts import DECISION_SYSTEM_PROMPT, format_tools, render_prompt
from adapter_core.providers.base import BackendClient

ANALYZE_SUFFIX = "Now, analyze the conversation and respond with the appropriate JSON:"
TOOL_RESULT_NOTE = (
    "Note: A tool result is available in the conversation history. "
    "Check if it answers the user's question."
)


def _fail(state: EngineState, exc: Exception) -> EngineState:
    code = exc.code if isinstance(exc, BusinessError) else "BACKEND_ERROR"
    message = exc.message if isinstance(exc, BusinessError) else f"{type(exc).__name__}: {exc}"
    state["failure"] = (code, message)
    logger.warning(
        "decision.stage_failed",
        extra={"extra": {"stage": state.get("stage"), "code": code, "error": message}},
    )
    return state


def build_prompt_node(state: EngineState, window_size: int) -> EngineState:
    ctx = state["context"]
    has_tool_result, tool_result_text = split_last_tool_result(ctx.history)
    user_message = last_user_message(ctx.history)
    recent = recent_window(ctx.history, window_size)

    body = render_prompt(
        "unified_response",
        system_context=ctx.system_context,
        recent_context=f"\nRecent Conversation Context:\n{recent}\n" if recent else "",
        tool_result=f"\nTool Result:\n{tool_result_text}" if has_tool_result else "",
        tools=format_tools(ctx.tools),
        user_message=user_message,
    )
    prompt = f"{body}\n\n{ANALYZE_SUFFIX}"
    if has_tool_result:
        prompt += f"\n\n{TOOL_RESULT_NOTE}"

    state["stage"] = "build_prompt"
    state["user_message"] = user_message
    state["has_tool_result"] = has_tool_result
    state["tool_result_text"] = tool_result_text
    state["prompt"] = prompt
    logger.debug(
        "decision.prompt_built",
        extra={"extra": {"prompt_length": len(prompt), "has_tool_result": has_tool_result}},
    )
    return state


def exchange_node(state: EngineState, backend: BackendClient, response_timeout: float) -> EngineState:
    state["stage"] = "await_backend"
    try:
        result = backend.exchange(
            DECISION_SYSTEM_PROMPT,
            state["prompt"],
            title="unified-response",
            response_timeout=response_timeout,
        )
    except (BackendUnavailable, SessionCreateFailure):
        raise
    except Exception as exc:
        # 会话创建之后的任何后端异常都进入降级链
        return _fail(state, exc)
    state["raw_output"] = result.content
    logger.debug("decision.raw_output", extra={"extra": {"content": result.content[:500]}})
    return state


def extract_node(state: EngineState) -> EngineState:
    state["stage"] = "parse"
    try:
        candidate, found = extract_json_object(state.get("raw_output") or "")
    except MalformedModelOutput as exc:
        return _fail(state, exc)
    if found > 1:
        logger.warning("decision.multiple_json_objects", extra={"extra": {"count": found}})
    state["candidate"] = candidate
    return state


def validate_node(state: EngineState) -> EngineState:
    state["stage"] = "validate"
    try:
        state["response"] = parse_unified_response(state.get("candidate") or "")
    except MalformedModelOutput as exc:
        return _fail(state, exc)
    state["stage"] = "success"
    return state


def fallback_node(state: EngineState, chain: FallbackChain) -> EngineState:
    ctx = state["context"]
    data = FallbackInput(
        system_context=ctx.system_context,
        user_message=state.get("user_message", ""),
        has_tool_result=state.get("has_tool_result", False),
        tool_result_text=state.get("tool_result_text", ""),
        tools=ctx.tools,
    )
    stage, response = chain.run(data)
    state["stage"] = stage
    state["response"] = response
    return state


def failure_router(next_node: str):
    def route(state: EngineState) -> str:
        return "fallback" if state.get("failure") else next_node

    return route


def build_graph(
    backend: BackendClient,
    chain: FallbackChain,
    *,
    window_size: int = 10,
    response_timeout: float = 50.0,
) -> CompiledStateGraph:
    graph = StateGraph(EngineState)
    graph.add_node("build_prompt", lambda s: build_prompt_node(s, window_size))
    graph.add_node("exchange", lambda s: exchange_node(s, backend, response_timeout))
    graph.add_node("extract", extract_node)
    graph.add_node("validate", validate_node)
    graph.add_node("fallback", lambda s: fallback_node(s, chain))
    graph.set_entry_point("build_prompt")
    graph.add_edge("build_prompt", "exchange")
    graph.add_conditional_edges("exchange", failure_router("extract"), {"extract": "extract", "fallback": "fallback"})
    graph.add_conditional_edges("extract", failure_router("validate"), {"validate": "validate", "fallback": "fallback"})
    graph.add_conditional_edges("validate", failure_router("end"), {"end": END, "fallback": "fallback"})
    graph.add_edge("fallback", END)
    return graph.compile()
