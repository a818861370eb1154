"""OpenCode 会话通信层。

OpenCode 服务端只提供基于会话的自由文本对话能力，本模块负责：

1. 创建会话（POST /session）。
2. 提交 prompt（POST /session/{id}/message），受"提交超时"约束。
3. 轮询消息列表（GET /session/{id}/message），直到最新的助手消息出现文本，
   受"响应超时"约束。
4. 无论成功与否都删除会话（DELETE /session/{id}），受"清理超时"约束，
   清理失败只记录日志，不影响交换本身的结果或错误。

三层超时互相独立，对应三种不同的故障：提交挂起、生成过慢、清理挂起。
httpx 的 timeout 只限制单次连接/读写，因此提交、轮询和清理请求都放到
工作线程里执行，并用 future.result(timeout=...) 限制整次调用的墙钟时间。
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

import httpx

from adapter_core.domain.exceptions import (
    ApiError,
    BackendUnavailable,
    NetworkError,
    ResponseTimeout,
    SessionCreateFailure,
    SubmissionTimeout,
)
from adapter_core.domain.models import ExchangeResult, ModelSelector
from adapter_core.infrastructure.logging.logger import logger

MAX_WORKERS = 16


class OpencodeClient:
    """OpenCode 后端客户端实现。

    - 进程内只需一个实例：open() 时创建共享的 httpx.Client 和请求线程池，close() 时释放。
    - 每次 exchange 使用独立的远端会话，会话不复用。
    """

    name = "opencode"

    def __init__(self, settings, model: Optional[ModelSelector] = None):
        # Settings 里包含 OpenCode 地址、模型与各级超时配置
        self._settings = settings
        self._model = model or ModelSelector(
            provider_id=settings.model_provider,
            model_id=settings.model_id,
        )
        self._client: Optional[httpx.Client] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def model(self) -> ModelSelector:
        return self._model

    def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.Client(
            base_url=self._settings.opencode_base_url,
            timeout=self._settings.http_timeout,
            trust_env=False,
        )
        self._executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="opencode")
        logger.info("OpenCode client opened", extra={"extra": {"base_url": self._settings.opencode_base_url}})

    def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        executor, self._executor = self._executor, None
        if executor is not None:
            # 超时后仍挂起的请求不等待，随 client.close() 一起失效
            executor.shutdown(wait=False, cancel_futures=True)
        client.close()
        logger.info("OpenCode client closed")
    def is_connected(self) -> bool:
        return self._client is not None

    def __enter__(self) -> "OpencodeClient":
        self.open()
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False

    def exchange(
        self,
        system_prompt: str,
        user_text: str,
        *,
        title: str = "ollama-opencode-session",
        response_timeout: Optional[float] = None,
    ) -> ExchangeResult:
        """执行一次完整的 prompt/response 交换。

        步骤：
        1. 创建会话，失败直接抛出 SessionCreateFailure。
        2. 提交 prompt 并轮询助手文本。
        3. finally 中删除会话，清理错误被吞掉。
        """

        if self._client is None:
            raise BackendUnavailable()
        limit = response_timeout or self._settings.response_timeout
        session_id = self.create_session(title)
        try:
            started = time.monotonic()
            self.submit(session_id, system_prompt, user_text)
            content = self.poll(session_id, started, limit)
            elapsed_ms = int((time.monotonic() - started) * 1000)
        finally:
            self.delete_session(session_id)
        logger.info(
            "Exchange completed",
            extra={"extra": {"session_id": session_id, "title": title, "elapsed_ms": elapsed_ms}},
        )
        return ExchangeResult(content=content, elapsed_ms=elapsed_ms)

    def create_session(self, title: str) -> str:
        client = self._require_client()
        try:
            resp = client.post("/session", json={"title": title})
        except httpx.HTTPError as e:
            raise SessionCreateFailure(f"Failed to create OpenCode session: {e}")
        if resp.status_code >= 400:
            raise SessionCreateFailure(
                f"Failed to create OpenCode session: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError:
            data = None
        session_id = data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise SessionCreateFailure()
        return session_id

    def submit(self, session_id: str, system_prompt: str, user_text: str) -> None:
        client = self._require_client()
        timeout = self._settings.submission_timeout
        payload = {
            "model": {"providerID": self._model.provider_id, "modelID": self._model.model_id},
            "system": system_prompt,
            "parts": [{"type": "text", "text": user_text}],
        }
        try:
            resp = self._call_with_deadline(
                timeout, client.post, f"/session/{session_id}/message", json=payload, timeout=timeout
            )
        except (FutureTimeout, httpx.TimeoutException):
            raise SubmissionTimeout(
                code="SUBMISSION_TIMEOUT",
                message=f"session prompt timeout after {timeout:g}s",
                session_id=session_id,
            )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), session_id=session_id)
        self._check_status(resp, session_id)

    def poll(self, session_id: str, started: float, response_timeout: float) -> str:
        """按固定间隔轮询，返回最新助手消息中的第一段非空文本。"""

        polls = 0
        deadline = started + response_timeout
        while time.monotonic() < deadline:
            polls += 1
            text = self._fetch_assistant_text(session_id, deadline - time.monotonic())
            if text:
                logger.debug("Assistant text received", extra={"extra": {"session_id": session_id, "polls": polls}})
                return text
            time.sleep(max(0.0, min(self._settings.poll_interval, deadline - time.monotonic())))
        raise ResponseTimeout(
            code="RESPONSE_TIMEOUT",
            message=f"OpenCode response timeout after {int(response_timeout * 1000)}ms",
            session_id=session_id,
            polls=polls,
        )

    def delete_session(self, session_id: str) -> None:
        client = self._client
        if client is None:
            return
        timeout = self._settings.cleanup_timeout
        try:
            resp = self._call_with_deadline(timeout, client.delete, f"/session/{session_id}", timeout=timeout)
            if resp.status_code >= 400:
                logger.warning(
                    "Failed to delete OpenCode session",
                    extra={"extra": {"session_id": session_id, "status_code": resp.status_code}},
                )
        except FutureTimeout:
            logger.warning(
                "Failed to delete OpenCode session",
                extra={"extra": {"session_id": session_id, "error": f"cleanup timeout after {timeout:g}s"}},
            )
        except Exception as exc:
            # 清理失败只记录，不覆盖交换结果
            logger.warning(
                "Failed to delete OpenCode session",
                extra={"extra": {"session_id": session_id, "error": str(exc)}},
            )

    def _fetch_assistant_text(self, session_id: str, remaining: float) -> str:
        client = self._require_client()
        if remaining <= 0:
            return ""
        timeout = min(self._settings.http_timeout, remaining)
        try:
            resp = self._call_with_deadline(timeout, client.get, f"/session/{session_id}/message", timeout=timeout)
        except (FutureTimeout, httpx.TimeoutException):
            return ""
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), session_id=session_id)
        self._check_status(resp, session_id)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="API_ERROR", message="Invalid message list payload", session_id=session_id)
        if not isinstance(data, list):
            raise ApiError(code="API_ERROR", message="Message list payload is not a list", session_id=session_id)
        try:
            return _latest_assistant_text(data)
        except (TypeError, ValueError) as e:
            raise ApiError(code="API_ERROR", message=f"Malformed message list: {e}", session_id=session_id)

    def _call_with_deadline(self, timeout: float, fn: Callable[..., Any], /, *args, **kwargs) -> Any:
        """在线程池中执行请求，整次调用超过 timeout 秒抛出 FutureTimeout。"""

        executor = self._executor
        if executor is None:
            raise BackendUnavailable()
        future = executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        finally:
            future.cancel()

    def _require_client(self) -> httpx.Client:
        if self._client is None:
            raise BackendUnavailable()
        return self._client

    @staticmethod
    def _check_status(resp, session_id: str) -> None:
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=resp.text,
                http_status=resp.status_code,
                session_id=session_id,
            )


def _latest_assistant_text(messages: list) -> str:
    """只看最后一条助手消息，返回其中第一段非空 text part。

    消息结构不符合 {info: {role}, parts: [...]} 时抛出 TypeError。
    """

    latest = None
    for entry in messages:
        if not isinstance(entry, dict):
            raise TypeError(f"message entry must be an object, got {type(entry).__name__}")
        info = entry.get("info")
        if not isinstance(info, dict):
            raise TypeError(f"message info must be an object, got {type(info).__name__}")
        if info.get("role") == "assistant":
            latest = entry
    if latest is None:
        return ""
    parts = latest.get("parts")
    if parts is None:
        return ""
    if not isinstance(parts, list):
        raise TypeError(f"message parts must be a list, got {type(parts).__name__}")
    for part in parts:
        if not isinstance(part, dict):
            raise TypeError(f"message part must be an object, got {type(part).__name__}")
        text = part.get("text")
        if part.get("type") == "text" and isinstance(text, str) and text:
            return text
    return ""
