import pytest

from adapter_core.domain.exceptions import BackendUnavailable, SessionCreateFailure
from adapter_core.domain.models import (
    AnswerResponse,
    ChatResponse,
    ToolCallResponse,
    ToolDefinition,
)
from adapter_core.flows.fallback import (
    FALLBACK_MESSAGES,
    AnswerFromToolResult,
    ContextToolCall,
    FallbackChain,
    FallbackInput,
    detect_script,
    find_context_tool,
    is_query_request,
)


def _input(user="hello", tool_result=None, tools=()):
    return FallbackInput(
        system_context="ctx",
        user_message=user,
        has_tool_result=tool_result is not None,
        tool_result_text=tool_result or "",
        tools=tuple(ToolDefinition(name=n, description="") for n in tools),
    )


def test_detect_script_boundaries():
    assert detect_script("こんにちは") == "ja"
    assert detect_script("電気をつけてください") == "ja"
    assert detect_script("客廳的燈") == "zh"
    assert detect_script("hello") == "en"
    assert detect_script("") == "en"


def test_query_patterns():
    assert is_query_request("客廳的燈是開著的嗎")
    assert is_query_request("請問現在幾度")
    assert is_query_request("Is the light on?")
    assert is_query_request("what's the temperature")
    assert is_query_request("check the door state")
    assert not is_query_request("turn on the light")
    assert not is_query_request("this is fine")


def test_find_context_tool_priority():
    assert find_context_tool(_input(tools=["HassTurnOn", "GetLiveContext"]).tools) == "GetLiveContext"
    assert find_context_tool(_input(tools=["GetDeviceStatus", "ReadContext"]).tools) == "ReadContext"
    assert find_context_tool(_input(tools=["HassTurnOn", "GetDeviceStatus"]).tools) == "GetDeviceStatus"
    assert find_context_tool(_input(tools=["HassTurnOn"]).tools) is None


def test_answer_strategy_uses_secondary_prompt(make_backend):
    backend = make_backend(["  The light is on.  "])
    strategy = AnswerFromToolResult(backend, response_timeout=10.0)
    resp = strategy(_input(user="is the light on", tool_result="light: on"))
    assert resp == AnswerResponse(content="The light is on.")
    call = backend.calls[0]
    assert call["title"] == "generate-answer"
    assert call["response_timeout"] == 10.0
    assert "light: on" in call["system_prompt"]
    assert call["user_text"] == "is the light on"


def test_answer_strategy_falls_back_to_raw_result(make_backend):
    backend = make_backend([SessionCreateFailure()])
    resp = AnswerFromToolResult(backend, 10.0)(_input(tool_result="Light turned on successfully"))
    assert resp == AnswerResponse(content="Light turned on successfully")


def test_answer_strategy_skips_without_tool_result(make_backend):
    backend = make_backend(["x"])
    assert AnswerFromToolResult(backend, 10.0)(_input()) is None
    assert backend.calls == []
    assert ContextToolCall()(_input(user="hello", tools=["GetLiveContext"])) is None


def test_answer_strategy_empty_result_and_failed_secondary(make_backend):
    backend = make_backend([SessionCreateFailure()])
    assert AnswerFromToolResult(backend, 10.0)(_input(tool_result="  ")) is None


def test_chain_heuristic_tool_call(make_backend):
    chain = FallbackChain.default(make_backend(), 10.0)
    stage, resp = chain.run(_input(user="Is the kitchen light on?", tools=["HassTurnOn", "GetLiveContext"]))
    assert stage == "fallback_tool_call"
    assert resp == ToolCallResponse(tool_name="GetLiveContext", arguments={})


def test_chain_apology_by_language(make_backend):
    chain = FallbackChain.default(make_backend(), 10.0)
    assert chain.run(_input(user="開燈"))[1] == ChatResponse(content=FALLBACK_MESSAGES["zh"])
    assert chain.run(_input(user="ライトをつけて"))[1] == ChatResponse(content=FALLBACK_MESSAGES["ja"])
    stage, resp = chain.run(_input(user="turn on the light"))
    assert stage == "fallback_chat"
    assert resp == ChatResponse(content=FALLBACK_MESSAGES["en"])


def test_chain_order_is_respected():
    seen = []

    def first(data):
        seen.append("first")
        return None

    def second(data):
        seen.append("second")
        return ChatResponse(content="second")

    def third(data):
        seen.append("third")
        return ChatResponse(content="third")

    stage, resp = FallbackChain([first, second, third]).run(_input())
    assert seen == ["first", "second"]
    assert stage == "second"
    assert resp.content == "second"


def test_answer_strategy_absorbs_unexpected_errors(make_backend):
    backend = make_backend([TypeError("bad payload")])
    resp = AnswerFromToolResult(backend, 10.0)(_input(tool_result="Door locked"))
    assert resp == AnswerResponse(content="Door locked")


def test_answer_strategy_reraises_backend_unavailable(make_backend):
    backend = make_backend([BackendUnavailable()])
    with pytest.raises(BackendUnavailable):
        AnswerFromToolResult(backend, 10.0)(_input(tool_result="Door locked"))
