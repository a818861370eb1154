import pytest

from adapter_core.domain.exceptions import ResponseTimeout
from adapter_core.domain.models import ExchangeResult


class EngineSettingsStub:
    model_id = "gpt-4o"
    response_timeout = 50.0
    answer_response_timeout = 10.0
    recent_window_size = 10


class FakeBackend:
    """按顺序返回预设输出（字符串或异常）的后端。"""

    name = "fake"

    def __init__(self, outputs=(), connected=True):
        self.outputs = list(outputs)
        self.calls = []
        self.connected = connected
        self.open_count = 0
        self.close_count = 0

    def open(self):
        self.open_count += 1
        self.connected = True

    def close(self):
        self.close_count += 1
        self.connected = False

    def is_connected(self):
        return self.connected

    def exchange(self, system_prompt, user_text, *, title, response_timeout):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_text": user_text,
            "title": title,
            "response_timeout": response_timeout,
        })
        if self.outputs:
            out = self.outputs.pop(0)
        else:
            out = ResponseTimeout(code="RESPONSE_TIMEOUT", message="no output configured")
        if isinstance(out, Exception):
            raise out
        return ExchangeResult(content=out, elapsed_ms=5)


@pytest.fixture
def engine_settings():
    return EngineSettingsStub()


@pytest.fixture
def make_backend():
    return FakeBackend
