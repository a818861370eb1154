import pytest

from adapter_core.domain.conversation import build_context
from adapter_core.domain.exceptions import (
    ApiError,
    BackendUnavailable,
    ResponseTimeout,
    SessionCreateFailure,
    SubmissionTimeout,
)
from adapter_core.domain.models import AnswerResponse, ChatResponse, ToolCallResponse
from adapter_core.flows.fallback import FALLBACK_MESSAGES
from adapter_core.flows.runner import ResponseEngine
from adapter_core.prompts import DECISION_SYSTEM_PROMPT

LIGHT_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "TurnOnLight",
            "description": "Turn on a light",
            "parameters": {
                "type": "object",
                "properties": {"entity": {"type": "string", "description": "Entity id"}},
                "required": ["entity"],
            },
        },
    },
    {
        "type": "function",
        "function": {"name": "GetLiveContext", "description": "Current device states", "parameters": {}},
    },
]


def _engine(backend, engine_settings):
    return ResponseEngine(backend, engine_settings)


def test_tool_call_decision(make_backend, engine_settings):
    backend = make_backend([
        '{"action":"tool_call","tool_name":"TurnOnLight","arguments":{"entity":"light.living_room"}}'
    ])
    ctx = build_context([{"role": "user", "content": "turn on the living room light"}], LIGHT_TOOLS)
    resp = _engine(backend, engine_settings).generate(ctx)

    assert resp == ToolCallResponse(tool_name="TurnOnLight", arguments={"entity": "light.living_room"})
    assert len(backend.calls) == 1
    call = backend.calls[0]
    assert call["system_prompt"] == DECISION_SYSTEM_PROMPT
    assert call["title"] == "unified-response"
    assert call["response_timeout"] == 50.0
    prompt = call["user_text"]
    assert 'User Request: "turn on the living room light"' in prompt
    assert "1. TurnOnLight" in prompt
    assert "  - entity (required): string - Entity id" in prompt
    assert "(no parameters)" in prompt
    assert "Recent Conversation Context" not in prompt
    assert "Tool Result:" not in prompt


def test_prompt_includes_window_and_tool_result(make_backend, engine_settings):
    backend = make_backend(['{"action": "answer", "content": "客廳燈已經開啟了"}'])
    ctx = build_context(
        [
            {"role": "system", "content": "Devices: light.living_room"},
            {"role": "user", "content": "開客廳的燈"},
            {"role": "assistant", "content": "", "tool_calls": [
                {"function": {"name": "TurnOnLight", "arguments": {"entity": "light.living_room"}}}
            ]},
            {"role": "tool", "content": '{"success": true, "result": "Light turned on successfully"}'},
        ],
        LIGHT_TOOLS,
    )
    resp = _engine(backend, engine_settings).generate(ctx)

    assert resp == AnswerResponse(content="客廳燈已經開啟了")
    prompt = backend.calls[0]["user_text"]
    assert "Devices: light.living_room" in prompt
    assert "Recent Conversation Context:\nUser: 開客廳的燈\n" in prompt
    assert 'Assistant: [Executed TurnOnLight({"entity":"light.living_room"})]' in prompt
    assert "Tool Result:\nLight turned on successfully" in prompt
    assert "A tool result is available" in prompt


def test_chat_decision_from_fenced_output(make_backend, engine_settings):
    backend = make_backend(['```json\n{"action": "chat", "content": "Hello!"}\n```'])
    ctx = build_context([{"role": "user", "content": "hello"}], [])
    assert _engine(backend, engine_settings).generate(ctx) == ChatResponse(content="Hello!")


def test_duplicated_json_uses_first_object(make_backend, engine_settings):
    backend = make_backend(['{"action": "chat", "content": "one"}{"action": "chat", "content": "two"}'])
    ctx = build_context([{"role": "user", "content": "hello"}], [])
    assert _engine(backend, engine_settings).generate(ctx) == ChatResponse(content="one")


def test_failed_decision_with_tool_result_answers(make_backend, engine_settings):
    backend = make_backend([
        ResponseTimeout(code="RESPONSE_TIMEOUT", message="timeout"),
        "The living room light is now on.",
    ])
    ctx = build_context(
        [
            {"role": "user", "content": "turn on the living room light"},
            {"role": "assistant", "content": "", "tool_calls": [{"function": {"name": "TurnOnLight", "arguments": {}}}]},
            {"role": "tool", "content": "Light turned on successfully"},
        ],
        LIGHT_TOOLS,
    )
    resp = _engine(backend, engine_settings).generate(ctx)
    assert resp == AnswerResponse(content="The living room light is now on.")
    assert [c["title"] for c in backend.calls] == ["unified-response", "generate-answer"]
    assert backend.calls[1]["response_timeout"] == 10.0


def test_total_backend_failure_with_tool_result_still_answers(make_backend, engine_settings):
    backend = make_backend([
        SubmissionTimeout(code="SUBMISSION_TIMEOUT", message="hang"),
        SubmissionTimeout(code="SUBMISSION_TIMEOUT", message="hang"),
    ])
    ctx = build_context(
        [{"role": "user", "content": "turn on the light"}, {"role": "tool", "content": "Light turned on successfully"}],
        LIGHT_TOOLS,
    )
    resp = _engine(backend, engine_settings).generate(ctx)
    assert resp == AnswerResponse(content="Light turned on successfully")


def test_malformed_output_query_falls_back_to_context_tool(make_backend, engine_settings):
    backend = make_backend(["I think the light is on."])
    ctx = build_context([{"role": "user", "content": "客廳的燈是開著的嗎"}], LIGHT_TOOLS)
    resp = _engine(backend, engine_settings).generate(ctx)
    assert resp == ToolCallResponse(tool_name="GetLiveContext", arguments={})
    assert len(backend.calls) == 1


def test_invalid_action_falls_back_to_apology(make_backend, engine_settings):
    backend = make_backend(['{"action": "think", "content": "hmm"}'])
    ctx = build_context([{"role": "user", "content": "こんにちは"}], [])
    resp = _engine(backend, engine_settings).generate(ctx)
    assert resp == ChatResponse(content=FALLBACK_MESSAGES["ja"])


@pytest.mark.parametrize(
    "message,lang",
    [("turn on the light", "en"), ("把燈打開", "zh"), ("電気をつけて", "ja")],
)
def test_total_backend_failure_apologizes_in_user_language(make_backend, engine_settings, message, lang):
    backend = make_backend([ApiError(code="API_ERROR", message="down", http_status=500)])
    ctx = build_context([{"role": "user", "content": message}], [])
    assert _engine(backend, engine_settings).generate(ctx) == ChatResponse(content=FALLBACK_MESSAGES[lang])


def test_backend_unavailable_before_any_work(make_backend, engine_settings):
    backend = make_backend(['{"action": "chat", "content": "x"}'], connected=False)
    ctx = build_context([{"role": "user", "content": "hello"}], [])
    with pytest.raises(BackendUnavailable):
        _engine(backend, engine_settings).generate(ctx)
    assert backend.calls == []


def test_session_create_failure_propagates(make_backend, engine_settings):
    backend = make_backend([SessionCreateFailure(), "unused answer"])
    ctx = build_context(
        [{"role": "user", "content": "hello"}, {"role": "tool", "content": "ok"}],
        [],
    )
    with pytest.raises(SessionCreateFailure):
        _engine(backend, engine_settings).generate(ctx)
    assert len(backend.calls) == 1


def test_unexpected_backend_error_enters_fallback(make_backend, engine_settings):
    backend = make_backend([AttributeError("'str' object has no attribute 'get'"), KeyError("content")])
    ctx = build_context(
        [{"role": "user", "content": "turn on the light"}, {"role": "tool", "content": "Light turned on successfully"}],
        LIGHT_TOOLS,
    )
    resp = _engine(backend, engine_settings).generate(ctx)
    assert resp == AnswerResponse(content="Light turned on successfully")
    assert [c["title"] for c in backend.calls] == ["unified-response", "generate-answer"]
