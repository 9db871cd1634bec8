"""Mock processor client for local development and testing.

Returns scripted statuses. No real API calls.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque

from doctrack.core.exceptions import InvalidWorkItemError, SubmissionError
from doctrack.models.processor import ProcessingResult, StatusReport, SubmissionReceipt
from doctrack.models.work_item import WorkItem


class MockProcessorClient:
    """IProcessorClient implementation driven by per-key scripts.

    ``set_statuses(key, [...])`` queues responses for a key; each entry is a
    raw status string or an exception instance to raise. The last entry
    repeats once the queue is drained. Unscripted keys report ``default_status``.
    """

    def __init__(self, default_status: str = "Processing", reject_submissions: bool = False) -> None:
        self._default_status = default_status
        self._reject = reject_submissions
        self._lock = threading.Lock()
        self._scripts: dict[str, deque] = defaultdict(deque)
        self._results: dict[str, ProcessingResult] = {}
        self.submitted: list[WorkItem] = []
        self.status_calls: list[str] = []

    @staticmethod
    def key_for(request_id: str) -> str:
        return f"ext-{request_id}"

    def set_statuses(self, external_key: str, statuses: list) -> None:
        with self._lock:
            self._scripts[external_key] = deque(statuses)

    def set_result(self, external_key: str, result: ProcessingResult) -> None:
        self._results[external_key] = result

    def submit(self, item: WorkItem) -> SubmissionReceipt:
        request_id = item.request_id
        if request_id is None:
            raise InvalidWorkItemError(str(item.source), "RequestId metadata attribute is required")
        if self._reject:
            raise SubmissionError(request_id, "rejected by mock processor", error_code="REJECTED")
        self.submitted.append(item)
        return SubmissionReceipt(request_id=self.key_for(request_id), status="Accepted")

    def get_status(self, external_key: str) -> StatusReport:
        with self._lock:
            self.status_calls.append(external_key)
            script = self._scripts.get(external_key)
            if script:
                entry = script.popleft() if len(script) > 1 else script[0]
            else:
                entry = self._default_status
        if isinstance(entry, BaseException):
            raise entry
        return StatusReport(
            request_id=external_key,
            status=entry,
            result=self._results.get(external_key),
        )
