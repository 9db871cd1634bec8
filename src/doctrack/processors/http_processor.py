"""HTTP client for the external document processing API.

Every call carries an explicit timeout. Transport failures, 429 and 5xx
responses are retried with exponential backoff; whatever is still failing
after the last attempt surfaces as ``SubmissionError`` (submit) or
``TransientExternalError`` (status).
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from doctrack.core.config import ProcessorConfig, ResilienceConfig
from doctrack.core.exceptions import InvalidWorkItemError, SubmissionError, TransientExternalError
from doctrack.models.processor import StatusReport, SubmissionReceipt
from doctrack.models.work_item import WorkItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope the processing API wraps every response in."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    error_code: Optional[str] = None


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


class HttpProcessorClient:
    """IProcessorClient talking JSON over HTTP."""

    def __init__(
        self,
        config: ProcessorConfig | None = None,
        resilience: ResilienceConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config or ProcessorConfig()
        self._resilience = resilience or ResilienceConfig()
        headers = {"Accept": "application/json"}
        if self._config.subscription_key:
            headers[self._config.subscription_key_header] = self._config.subscription_key
        self._client = httpx.Client(
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _retrying(self) -> Retrying:
        base = self._resilience.base_delay_seconds
        return Retrying(
            stop=stop_after_attempt(max(1, self._resilience.max_attempts)),
            wait=wait_exponential_jitter(
                initial=base, max=self._resilience.max_delay_seconds, jitter=min(base, 1.0),
            ),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        for attempt in self._retrying():
            with attempt:
                n = attempt.retry_state.attempt_number
                if n > 1:
                    logger.info("Retrying %s %s (attempt %d)", method, path, n)
                response = self._client.request(method, path, **kwargs)
                response.raise_for_status()
                return response
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _submission_body(item: WorkItem, request_id: str) -> dict[str, Any]:
        return {
            "requestId": request_id,
            "documentName": item.source.name,
            "sourceContainer": item.source.container,
            "destinationContainer": item.destination.container,
            "eventType": item.event_type.value,
            "createdAt": item.created_at.isoformat(),
            "metadata": item.metadata,
        }

    def submit(self, item: WorkItem) -> SubmissionReceipt:
        request_id = item.request_id
        if request_id is None:
            raise InvalidWorkItemError(str(item.source), "RequestId metadata attribute is required")

        logger.info("Submitting document %s to external API", item.source.name)
        try:
            response = self._send("POST", self._config.submit_path,
                                  json=self._submission_body(item, request_id))
            body = ApiResponse[SubmissionReceipt].model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise SubmissionError(
                request_id, f"HTTP {exc.response.status_code}", error_code=str(exc.response.status_code),
            ) from exc
        except httpx.HTTPError as exc:
            raise SubmissionError(request_id, f"transport error: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise SubmissionError(request_id, f"malformed response: {exc}") from exc

        if not body.success or body.data is None:
            raise SubmissionError(
                request_id, body.message or "rejected by processor", error_code=body.error_code,
            )
        return body.data

    def get_status(self, external_key: str) -> StatusReport:
        path = self._config.status_path.format(key=external_key)
        logger.debug("Getting status for %s from external API", external_key)
        try:
            response = self._send("GET", path)
            body = ApiResponse[StatusReport].model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise TransientExternalError(
                "status", f"HTTP {exc.response.status_code} for {external_key}",
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientExternalError("status", f"{type(exc).__name__} for {external_key}: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise TransientExternalError("status", f"malformed response for {external_key}: {exc}") from exc

        if not body.success or body.data is None:
            raise TransientExternalError("status", body.message or f"no status for {external_key}")
        return body.data
