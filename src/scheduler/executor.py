from __future__ import annotations

import time
from typing import Dict, Iterable, Optional, Tuple

import httpx
from loguru import logger

from src.exceptions import TransportError
from src.models.execution_log import ExecutionLog
from src.models.task import ApiTask, HttpMethod
from src.scheduler.interval import utcnow
from src.transport import send_with_deadline

REDACTED = "[REDACTED]"


def _describe_transport_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return f"Request timed out: {exc}" if str(exc) else "Request timed out"
    if isinstance(exc, httpx.ConnectError):
        return f"Connection failed: {exc}"
    detail = str(exc) or exc.__class__.__name__
    return f"{exc.__class__.__name__}: {detail}"


class TaskExecutor:
    """Performs the outbound HTTP call of a task and turns the outcome into a log.

    A completed exchange (any status code) produces a log with ``status_code``
    set and ``error_message`` empty. Transport failures produce a log with
    ``status_code=None`` and a readable ``error_message``. Nothing is retried
    and nothing is persisted here.

    Args:
        client: Shared httpx client. Its timeout bounds each connect/read phase.
        redacted_headers: Response header names (lower-case) whose values are
            replaced before they are stored.
        timeout: Total seconds allowed from sending the request to reading the
            last body byte. A body still arriving after that counts as a timeout.
    """

    def __init__(
        self,
        client: httpx.Client,
        redacted_headers: Iterable[str] = (),
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.redacted_headers = {name.lower() for name in redacted_headers}
        self.timeout = timeout

    def build_request(self, task: ApiTask) -> httpx.Request:
        headers: Dict[str, str] = dict(task.request_headers or {})
        content: Optional[str] = None

        if task.method == HttpMethod.POST and task.request_body:
            content = task.request_body
            if not any(name.lower() == "content-type" for name in headers):
                headers["Content-Type"] = "application/json"

        return self.client.build_request(
            task.method.value, task.api_url, headers=headers, content=content
        )

    def execute(self, task: ApiTask) -> ExecutionLog:
        started = time.perf_counter()
        try:
            response, body = self._send(task)
        except TransportError as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.warning(f"Task {task.id} ({task.task_name}) failed: {e}")
            return ExecutionLog(
                task_id=task.id,
                user_id=task.user_id,
                status_code=None,
                response_headers=None,
                response_body=None,
                response_time_ms=elapsed_ms,
                error_message=str(e),
                executed_at=utcnow(),
            )

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Task {task.id} ({task.task_name}) - Status: {response.status_code} "
            f"- Time: {elapsed_ms}ms"
        )

        response_headers = None
        response_body = None
        if task.include_response:
            response_headers = self._capture_headers(response.headers)
            response_body = body.decode(response.encoding or "utf-8", errors="replace")

        return ExecutionLog(
            task_id=task.id,
            user_id=task.user_id,
            status_code=response.status_code,
            response_headers=response_headers,
            response_body=response_body,
            response_time_ms=elapsed_ms,
            error_message=None,
            executed_at=utcnow(),
        )

    def _send(self, task: ApiTask) -> Tuple[httpx.Response, bytes]:
        try:
            request = self.build_request(task)
            return send_with_deadline(self.client, request, self.timeout)
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(_describe_transport_error(e)) from e

    def _capture_headers(self, headers: httpx.Headers) -> Dict[str, str]:
        captured = {}
        for name, value in headers.items():
            key = name.lower()
            captured[key] = REDACTED if key in self.redacted_headers else value
        return captured
