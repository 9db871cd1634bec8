"""StatusPoller: the reconciliation loop driving tracked requests to a terminal state.

State machine (initial Processing; Completed/Failed/TimedOut are terminal)::

    Processing --(age > max_age)-----------------------> TimedOut
    Processing --(processor: success vocabulary)-------> Completed
    Processing --(processor: failure vocabulary)-------> Failed
    Processing --(processor: other / unknown)----------> Processing, check_count + 1
    Processing --(call error, check_count >= max)------> Failed
    Processing --(call error, check_count <  max)------> Processing, check_count + 1

A terminal transition dispatches exactly one notification and then deletes
the record. If the delete does not happen (crash, store error) the record is
picked up again next cycle and notified again, so consumers must tolerate
at-least-once delivery.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from doctrack.core.config import MonitoringConfig
from doctrack.core.protocols import INotificationDispatcher, IProcessorClient, ITrackingStore
from doctrack.core.types import Clock
from doctrack.models.notifications import MAX_CHECKS_ERROR_CODE, LifecycleEvent
from doctrack.models.processor import ExternalOutcome, StatusVocabulary
from doctrack.models.tracking import (
    Deleted,
    NotFound,
    RequestStatus,
    TrackingQuery,
    TrackingRecord,
    utcnow,
)

logger = logging.getLogger(__name__)

MAX_CHECKS_REASON = "exceeded maximum status checks"

AGE_BUCKETS: tuple[tuple[timedelta, str], ...] = (
    (timedelta(hours=1), "<1h"),
    (timedelta(hours=6), "1h-6h"),
    (timedelta(hours=24), "6h-24h"),
)
OVERFLOW_BUCKET = ">24h"


class CheckOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    STILL_PROCESSING = "still_processing"
    RETRYING = "retrying"  # status call failed, record kept
    ERROR = "error"  # unexpected failure, record left untouched
    DEFERRED = "deferred"  # cycle cancelled before the record was reached


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: datetime | None = None
    scanned: int = 0
    counts: dict[CheckOutcome, int] = field(
        default_factory=lambda: {o: 0 for o in CheckOutcome}
    )
    cancelled: bool = False

    def add(self, outcome: CheckOutcome) -> None:
        self.counts[outcome] += 1

    def __getitem__(self, outcome: CheckOutcome) -> int:
        return self.counts[outcome]

    def as_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "scanned": self.scanned,
            "cancelled": self.cancelled,
            **{o.value: n for o, n in self.counts.items()},
        }


@dataclass(frozen=True)
class BacklogReport:
    """Health signal for records waiting on the processor."""

    generated_at: datetime
    pending: int
    oldest_age_seconds: float | None
    age_histogram: dict[str, int]

    def as_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "pending": self.pending,
            "oldest_age_seconds": self.oldest_age_seconds,
            "age_histogram": dict(self.age_histogram),
        }


def build_backlog(records: list[TrackingRecord], now: datetime) -> BacklogReport:
    histogram = {label: 0 for _, label in AGE_BUCKETS}
    histogram[OVERFLOW_BUCKET] = 0
    oldest: timedelta | None = None
    for record in records:
        age = record.age(now)
        if oldest is None or age > oldest:
            oldest = age
        for bound, label in AGE_BUCKETS:
            if age < bound:
                histogram[label] += 1
                break
        else:
            histogram[OVERFLOW_BUCKET] += 1
    return BacklogReport(
        generated_at=now,
        pending=len(records),
        oldest_age_seconds=oldest.total_seconds() if oldest is not None else None,
        age_histogram=histogram,
    )


class StatusPoller:
    """Periodically reconciles Processing records against the external processor."""

    def __init__(
        self,
        *,
        tracking_store: ITrackingStore,
        processor: IProcessorClient,
        dispatcher: INotificationDispatcher,
        config: MonitoringConfig | None = None,
        vocabulary: StatusVocabulary | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = tracking_store
        self._processor = processor
        self._dispatcher = dispatcher
        self._config = config or MonitoringConfig()
        self._vocabulary = vocabulary or StatusVocabulary()
        self._clock = clock

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    # ---- loop ----

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run a cycle, wait the poll interval, repeat until ``stop_event`` is set."""
        logger.info("Status poller started (interval %ss, max age %s, max checks %d)",
                    self._config.poll_interval_seconds, self._config.max_age,
                    self._config.max_check_count)
        while not stop_event.is_set():
            try:
                self.run_cycle(stop_event)
            except Exception:
                logger.exception("Reconciliation cycle failed")
            if stop_event.wait(self._config.poll_interval_seconds):
                break
        logger.info("Status poller stopped")

    def run_cycle(self, stop_event: threading.Event | None = None) -> CycleReport:
        """Reconcile every Processing record once.

        Failures are isolated per record. Setting ``stop_event`` stops new
        records from being started; those are reported as deferred.
        """
        stop = stop_event or threading.Event()
        report = CycleReport(started_at=self._clock())
        logger.info("Reconciliation cycle started at %s", report.started_at.isoformat())

        records = self._store.query(TrackingQuery.pending())
        report.scanned = len(records)
        logger.info("Found %d processing requests to monitor", len(records))

        if records:
            workers = max(1, min(self._config.max_workers, len(records)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="doctrack-poll") as pool:
                futures = [pool.submit(self._check_isolated, r, stop) for r in records]
                for future in as_completed(futures):
                    report.add(future.result())

        report.cancelled = stop.is_set()
        report.finished_at = self._clock()
        # workers flip status on the records they retire
        backlog = build_backlog(
            [r for r in records if not r.status.is_terminal], report.finished_at,
        )
        logger.info(
            "Reconciliation cycle completed: completed=%d failed=%d timed_out=%d "
            "still_processing=%d retrying=%d errors=%d deferred=%d",
            report[CheckOutcome.COMPLETED], report[CheckOutcome.FAILED],
            report[CheckOutcome.TIMED_OUT], report[CheckOutcome.STILL_PROCESSING],
            report[CheckOutcome.RETRYING], report[CheckOutcome.ERROR],
            report[CheckOutcome.DEFERRED],
        )
        logger.info("Backlog: pending=%d oldest_age_seconds=%s histogram=%s",
                    backlog.pending, backlog.oldest_age_seconds, backlog.age_histogram)
        return report

    def backlog(self) -> BacklogReport:
        return build_backlog(self._store.query(TrackingQuery.pending()), self._clock())

    def _check_isolated(self, record: TrackingRecord, stop: threading.Event) -> CheckOutcome:
        if stop.is_set():
            return CheckOutcome.DEFERRED
        try:
            return self.reconcile(record)
        except Exception:
            logger.exception("Error processing request %s", record.request_id)
            return CheckOutcome.ERROR

    # ---- per-record state machine ----

    def reconcile(self, record: TrackingRecord) -> CheckOutcome:
        """Apply one reconciliation step to ``record``.

        The poller puts no deadline of its own on ``get_status``. Each call is
        bounded by the processor client (``ProcessorConfig.timeout_seconds``
        for the HTTP client); a timeout arrives here as an exception and is
        handled like any other failed call.
        """
        now = self._clock()

        if record.is_expired(now, self._config.max_age):
            logger.warning("Request %s has timed out (age: %s)", record.request_id, record.age(now))
            self._terminate(record, RequestStatus.TIMED_OUT, LifecycleEvent.timed_out(record, now))
            return CheckOutcome.TIMED_OUT

        try:
            status = self._processor.get_status(record.internal_key)
        except Exception as exc:
            return self._on_check_failed(record, now, exc)

        outcome = self._vocabulary.classify(status.status)
        record.last_external_status = status.status

        if outcome is ExternalOutcome.SUCCEEDED:
            logger.info("Request %s completed successfully", record.request_id)
            self._terminate(record, RequestStatus.COMPLETED,
                            LifecycleEvent.completed(record, status, now))
            return CheckOutcome.COMPLETED

        if outcome is ExternalOutcome.FAILED:
            error = status.message or f"Request failed with status: {status.status}"
            logger.info("Request %s failed with status %s", record.request_id, status.status)
            self._terminate(record, RequestStatus.FAILED,
                            LifecycleEvent.failed(record, error, now, error_code=status.status))
            return CheckOutcome.FAILED

        # no max_check_count cut-off here; max_age retires a job that never finishes
        record.check_count += 1
        record.last_checked_at = now
        self._store.upsert(record)
        logger.debug("Request %s still processing (status: %s, checks: %d)",
                     record.request_id, status.status, record.check_count)
        return CheckOutcome.STILL_PROCESSING

    def _on_check_failed(self, record: TrackingRecord, now: datetime, exc: Exception) -> CheckOutcome:
        record.check_count += 1
        record.last_checked_at = now
        if self._checks_exhausted(record):
            logger.warning("Status check for request %s failed (%s); no checks left",
                           record.request_id, exc)
            self._fail_max_checks(record, now)
            return CheckOutcome.FAILED

        self._store.upsert(record)
        logger.warning("Status check for request %s failed (check %d of %d): %s",
                       record.request_id, record.check_count, self._config.max_check_count, exc)
        return CheckOutcome.RETRYING

    def _checks_exhausted(self, record: TrackingRecord) -> bool:
        return record.check_count >= self._config.max_check_count

    def _fail_max_checks(self, record: TrackingRecord, now: datetime) -> None:
        event = LifecycleEvent.failed(record, MAX_CHECKS_REASON, now, error_code=MAX_CHECKS_ERROR_CODE)
        self._terminate(record, RequestStatus.FAILED, event)

    def _terminate(self, record: TrackingRecord, status: RequestStatus, event: LifecycleEvent) -> None:
        """Notify, then retire. A dispatch failure propagates and leaves the record in place."""
        self._dispatcher.dispatch(event)
        record.status = status

        result = self._store.delete(record.request_id)
        if isinstance(result, Deleted):
            logger.info("Request %s retired as %s", record.request_id, status.value)
        elif isinstance(result, NotFound):
            # Another poller instance got here first; the notification may be duplicated.
            logger.warning("Request %s was already removed before retiring as %s",
                           record.request_id, status.value)
        else:
            logger.error("Request %s notified as %s but not removed: %s; it will be "
                         "notified again next cycle", record.request_id, status.value, result.error)
