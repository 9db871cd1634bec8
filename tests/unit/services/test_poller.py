"""Tests for StatusPoller: per-record transitions, cycles and the backlog report."""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest

from doctrack.core.config import MonitoringConfig
from doctrack.core.exceptions import NotificationError, TransientExternalError
from doctrack.models.notifications import MAX_CHECKS_ERROR_CODE, TIMEOUT_ERROR_CODE
from doctrack.models.processor import ExternalOutcome, ProcessingResult, StatusVocabulary
from doctrack.models.tracking import Found, NotFound, RequestStatus, TrackingRecord
from doctrack.models.work_item import ContentLocator, WorkItem
from doctrack.services.notifications import NotificationDispatcher
from doctrack.services.poller import CheckOutcome, StatusPoller, build_backlog
from doctrack.services.submission import SubmissionOrchestrator
from tests.fakes import (
    T0,
    FakeClock,
    MemoryContentStore,
    MemoryMessageBus,
    MemoryTrackingStore,
    MockProcessorClient,
)


def _record(request_id: str, **overrides) -> TrackingRecord:
    loc = ContentLocator(container="inbox", name=f"{request_id}.pdf")
    fields = dict(
        request_id=request_id,
        internal_key=MockProcessorClient.key_for(request_id),
        source=loc,
        destination=loc,
        created_at=T0,
        submitted_at=T0,
        last_checked_at=T0,
        status=RequestStatus.PROCESSING,
    )
    fields.update(overrides)
    return TrackingRecord(**fields)


class Harness:
    def __init__(self, *, max_check_count: int = 100, max_age: timedelta = timedelta(hours=24),
                 max_workers: int = 4, config: MonitoringConfig | None = None,
                 vocabulary: StatusVocabulary | None = None, dispatcher=None,
                 processor: MockProcessorClient | None = None) -> None:
        self.clock = FakeClock()
        self.store = MemoryTrackingStore()
        self.bus = MemoryMessageBus()
        self.processor = processor or MockProcessorClient()
        self.config = config or MonitoringConfig(
            max_check_count=max_check_count, max_age=max_age, max_workers=max_workers,
        )
        self.dispatcher = dispatcher or NotificationDispatcher(self.bus)
        self.poller = StatusPoller(
            tracking_store=self.store,
            processor=self.processor,
            dispatcher=self.dispatcher,
            config=self.config,
            vocabulary=vocabulary,
            clock=self.clock,
        )

    def add(self, request_id: str, **overrides) -> TrackingRecord:
        record = _record(request_id, **overrides)
        self.store.upsert(record)
        return record

    def stored(self, request_id: str) -> TrackingRecord:
        result = self.store.get(request_id)
        assert isinstance(result, Found), result
        return result.record

    def events(self) -> list[str]:
        return [e["eventType"] for e in self.bus.envelopes()]


@pytest.fixture
def harness() -> Harness:
    return Harness()


class TestReconcile:
    def test_completed_notifies_then_deletes(self, harness):
        record = harness.add("r1")
        harness.processor.set_statuses("ext-r1", ["Completed"])
        harness.processor.set_result("ext-r1", ProcessingResult(document_name="r1.pdf", page_count=2))

        assert harness.poller.reconcile(record) is CheckOutcome.COMPLETED
        assert isinstance(harness.store.get("r1"), NotFound)
        envelope = harness.bus.envelopes("status")[0]
        assert envelope["eventType"] == "Completed"
        assert envelope["details"]["result"]["pageCount"] == 2

    def test_failed_status_uses_processor_message(self, harness):
        record = harness.add("r1")
        harness.processor.set_statuses("ext-r1", ["Error"])

        assert harness.poller.reconcile(record) is CheckOutcome.FAILED
        details = harness.bus.envelopes()[0]["details"]
        assert details["errorMessage"] == "Request failed with status: Error"
        assert details["errorCode"] == "Error"
        assert isinstance(harness.store.get("r1"), NotFound)

    def test_in_progress_increments_check_count(self, harness):
        record = harness.add("r1")
        harness.processor.set_statuses("ext-r1", ["queued"])
        harness.clock.advance(minutes=5)

        assert harness.poller.reconcile(record) is CheckOutcome.STILL_PROCESSING
        stored = harness.stored("r1")
        assert stored.check_count == 1
        assert stored.last_checked_at == harness.clock.now
        assert stored.last_external_status == "queued"
        assert harness.bus.published == []

    def test_unknown_status_is_non_terminal(self, harness, caplog):
        record = harness.add("r1")
        harness.processor.set_statuses("ext-r1", ["Reticulating"])

        assert harness.poller.reconcile(record) is CheckOutcome.STILL_PROCESSING
        assert harness.stored("r1").status is RequestStatus.PROCESSING
        assert "Reticulating" in caplog.text

    def test_injected_vocabulary(self):
        h = Harness(vocabulary=StatusVocabulary({"done": ExternalOutcome.SUCCEEDED}))
        record = h.add("r1")
        h.processor.set_statuses("ext-r1", ["DONE"])
        assert h.poller.reconcile(record) is CheckOutcome.COMPLETED

    def test_expiry_overrides_external_status(self, harness):
        record = harness.add("r1")
        harness.processor.set_statuses("ext-r1", ["Completed"])
        harness.clock.advance(hours=24, seconds=1)

        assert harness.poller.reconcile(record) is CheckOutcome.TIMED_OUT
        assert harness.processor.status_calls == []
        envelope = harness.bus.envelopes()[0]
        assert envelope["eventType"] == "TimedOut"
        assert envelope["details"]["errorCode"] == TIMEOUT_ERROR_CODE
        assert isinstance(harness.store.get("r1"), NotFound)

    def test_exactly_max_age_is_not_expired(self, harness):
        record = harness.add("r1")
        harness.clock.advance(hours=24)
        assert harness.poller.reconcile(record) is CheckOutcome.STILL_PROCESSING


class TestStatusCallFailures:
    def test_call_failure_keeps_record_and_counts(self, harness):
        record = harness.add("r1")
        harness.processor.set_statuses("ext-r1", [TransientExternalError("status", "timeout")])

        assert harness.poller.reconcile(record) is CheckOutcome.RETRYING
        stored = harness.stored("r1")
        assert stored.check_count == 1
        assert stored.status is RequestStatus.PROCESSING

    def test_call_failure_at_limit_fails_record(self):
        h = Harness(max_check_count=3)
        record = h.add("r1", check_count=2)
        h.processor.set_statuses("ext-r1", [TransientExternalError("status", "timeout")])

        assert h.poller.reconcile(record) is CheckOutcome.FAILED
        details = h.bus.envelopes()[0]["details"]
        assert details["errorCode"] == MAX_CHECKS_ERROR_CODE
        assert details["checkCount"] == 3
        assert isinstance(h.store.get("r1"), NotFound)

    def test_non_terminal_answers_do_not_trigger_the_cut_off(self):
        h = Harness(max_check_count=2)
        h.add("r1")
        h.processor.set_statuses("ext-r1", ["processing"])

        for _ in range(4):
            assert h.poller.reconcile(h.stored("r1")) is CheckOutcome.STILL_PROCESSING
        stored = h.stored("r1")
        assert stored.check_count == 4
        assert stored.status is RequestStatus.PROCESSING
        assert h.events() == []

    def test_call_failure_past_the_limit_fails_record(self):
        h = Harness(max_check_count=2)
        h.add("r1")
        h.processor.set_statuses("ext-r1", ["processing", "processing", TransientExternalError("status", "reset")])

        h.poller.reconcile(h.stored("r1"))
        h.poller.reconcile(h.stored("r1"))
        assert h.poller.reconcile(h.stored("r1")) is CheckOutcome.FAILED
        assert h.bus.envelopes()[0]["details"]["checkCount"] == 3


class TestTerminalDelivery:
    def test_dispatch_failure_leaves_record_for_next_cycle(self):
        class BrokenDispatcher:
            def dispatch(self, event):
                raise NotificationError("bus down")

        h = Harness(dispatcher=BrokenDispatcher())
        h.add("r1")
        h.processor.set_statuses("ext-r1", ["Completed"])

        report = h.poller.run_cycle()
        assert report[CheckOutcome.ERROR] == 1
        stored = h.stored("r1")
        assert stored.status is RequestStatus.PROCESSING
        assert stored.check_count == 0

    def test_already_deleted_record_is_tolerated(self, harness, caplog):
        record = _record("r1")
        harness.processor.set_statuses("ext-r1", ["Completed"])

        assert harness.poller.reconcile(record) is CheckOutcome.COMPLETED
        assert harness.events() == ["Completed"]
        assert "already removed" in caplog.text


class TestRunCycle:
    def test_reconciles_every_processing_record(self, harness):
        harness.add("done")
        harness.add("busy")
        harness.add("bad")
        harness.add("waiting", status=RequestStatus.SUBMITTED)
        harness.processor.set_statuses("ext-done", ["Completed"])
        harness.processor.set_statuses("ext-bad", ["failed"])

        report = harness.poller.run_cycle()

        assert report.scanned == 3
        assert report[CheckOutcome.COMPLETED] == 1
        assert report[CheckOutcome.FAILED] == 1
        assert report[CheckOutcome.STILL_PROCESSING] == 1
        assert sorted(harness.events()) == ["Completed", "Failed"]
        assert harness.processor.status_calls.count("ext-waiting") == 0
        assert report.finished_at is not None

    def test_one_failing_call_does_not_affect_others(self, harness):
        """Three records; the second one's status call raises."""
        for rid in ("r1", "r2", "r3"):
            harness.add(rid)
        harness.processor.set_statuses("ext-r1", ["Completed"])
        harness.processor.set_statuses("ext-r2", [TransientExternalError("status", "connection reset")])
        harness.processor.set_statuses("ext-r3", ["processing"])

        report = harness.poller.run_cycle()

        assert isinstance(harness.store.get("r1"), NotFound)
        assert harness.stored("r2").check_count == 1
        assert harness.stored("r2").status is RequestStatus.PROCESSING
        assert harness.stored("r3").check_count == 1
        assert report[CheckOutcome.RETRYING] == 1
        assert report[CheckOutcome.COMPLETED] == 1
        assert report[CheckOutcome.STILL_PROCESSING] == 1

    def test_cancelled_cycle_defers_records(self, harness):
        harness.add("r1")
        harness.add("r2")
        stop = threading.Event()
        stop.set()

        report = harness.poller.run_cycle(stop)

        assert report.cancelled
        assert report[CheckOutcome.DEFERRED] == 2
        assert harness.processor.status_calls == []
        assert harness.stored("r1").check_count == 0

    def test_hung_status_call_does_not_hold_up_the_cycle(self):
        """The second record's call blocks until the others are settled, then times out."""

        class HangingProcessor(MockProcessorClient):
            store: MemoryTrackingStore
            others_settled = False

            def get_status(self, external_key):
                if external_key != "ext-r2":
                    return super().get_status(external_key)
                deadline = time.monotonic() + 5
                while time.monotonic() < deadline:
                    r3 = self.store.get("r3")
                    if (isinstance(self.store.get("r1"), NotFound)
                            and isinstance(r3, Found) and r3.record.check_count == 1):
                        self.others_settled = True
                        break
                    time.sleep(0.01)
                raise TransientExternalError("status", "read timed out")

        processor = HangingProcessor()
        h = Harness(processor=processor)
        processor.store = h.store
        for rid in ("r1", "r2", "r3"):
            h.add(rid)
        processor.set_statuses("ext-r1", ["Completed"])
        processor.set_statuses("ext-r3", ["processing"])

        report = h.poller.run_cycle()

        assert processor.others_settled
        assert report[CheckOutcome.RETRYING] == 1
        assert report[CheckOutcome.COMPLETED] == 1
        assert report[CheckOutcome.STILL_PROCESSING] == 1
        assert h.stored("r2").check_count == 1
        assert h.stored("r2").status is RequestStatus.PROCESSING
        assert h.events() == ["Completed"]

    def test_stop_during_cycle_finishes_current_record_and_defers_the_rest(self):
        stop = threading.Event()

        class StoppingProcessor(MockProcessorClient):
            def get_status(self, external_key):
                stop.set()
                return super().get_status(external_key)

        h = Harness(max_workers=1, processor=StoppingProcessor(default_status="Completed"))
        for rid in ("r1", "r2", "r3"):
            h.add(rid)

        report = h.poller.run_cycle(stop)

        assert report.cancelled
        assert report[CheckOutcome.COMPLETED] == 1
        assert report[CheckOutcome.DEFERRED] == 2
        assert len(h.processor.status_calls) == 1
        first = h.processor.status_calls[0].removeprefix("ext-")
        assert isinstance(h.store.get(first), NotFound)
        assert h.events() == ["Completed"]
        for rid in {"r1", "r2", "r3"} - {first}:
            assert h.stored(rid).check_count == 0

    def test_empty_store(self, harness):
        report = harness.poller.run_cycle()
        assert report.scanned == 0
        assert report.as_dict()["completed"] == 0


class TestRunForever:
    def test_survives_failing_cycle_and_stops_on_event(self):
        stop = threading.Event()

        class FlakyStore(MemoryTrackingStore):
            calls = 0

            def query(self, query):
                FlakyStore.calls += 1
                if FlakyStore.calls == 1:
                    raise RuntimeError("store unavailable")
                stop.set()
                return super().query(query)

        poller = StatusPoller(
            tracking_store=FlakyStore(),
            processor=MockProcessorClient(),
            dispatcher=NotificationDispatcher(MemoryMessageBus()),
            config=MonitoringConfig(poll_interval_seconds=0.01),
        )
        poller.run_forever(stop)
        assert FlakyStore.calls == 2


class TestDefaultConfiguration:
    def test_job_that_never_finishes_times_out(self):
        """Polled every interval with the shipped defaults until the record retires."""
        config = MonitoringConfig()
        h = Harness(config=config)
        h.add("slow")
        h.processor.set_statuses("ext-slow", ["processing"])

        cycles = 0
        while isinstance(h.store.get("slow"), Found):
            assert cycles < 1000
            h.clock.advance(seconds=config.poll_interval_seconds)
            h.poller.run_cycle()
            cycles += 1

        expected_checks = int(config.max_age / timedelta(seconds=config.poll_interval_seconds))
        assert expected_checks > config.max_check_count
        assert cycles == expected_checks + 1
        assert h.events() == ["TimedOut"]
        details = h.bus.envelopes()[0]["details"]
        assert details["errorCode"] == TIMEOUT_ERROR_CODE
        assert details["checkCount"] == expected_checks
        assert h.clock.now - T0 > config.max_age


class TestEndToEnd:
    @pytest.fixture
    def pipeline(self, harness):
        content = MemoryContentStore()
        source = ContentLocator(container="inbox", name="w.pdf")
        content.put(source, b"data")
        orchestrator = SubmissionOrchestrator(
            content_store=content,
            processor=harness.processor,
            tracking_store=harness.store,
            dispatcher=harness.dispatcher,
            clock=harness.clock,
        )
        item = WorkItem(
            source=source,
            destination=ContentLocator(container="inbox-processed", name="w.pdf"),
            metadata={"RequestId": "W"},
        )
        orchestrator.submit_request(item)
        return harness

    def test_processing_then_completed(self, pipeline):
        pipeline.processor.set_statuses("ext-W", ["processing", "completed"])

        pipeline.clock.advance(minutes=5)
        pipeline.poller.run_cycle()
        stored = pipeline.stored("W")
        assert stored.check_count == 1
        assert stored.status is RequestStatus.PROCESSING

        pipeline.clock.advance(minutes=5)
        pipeline.poller.run_cycle()
        assert pipeline.events() == ["Submitted", "Completed"]
        assert isinstance(pipeline.store.get("W"), NotFound)

    def test_times_out_despite_processing_status(self, pipeline):
        pipeline.processor.set_statuses("ext-W", ["processing"])
        pipeline.clock.advance(hours=24, microseconds=1)

        report = pipeline.poller.run_cycle()

        assert report[CheckOutcome.TIMED_OUT] == 1
        assert pipeline.events() == ["Submitted", "TimedOut"]
        assert isinstance(pipeline.store.get("W"), NotFound)


class TestBacklog:
    def test_buckets_by_age(self, harness):
        harness.add("a", submitted_at=T0 - timedelta(minutes=10))
        harness.add("b", submitted_at=T0 - timedelta(hours=2))
        harness.add("c", submitted_at=T0 - timedelta(hours=7))
        harness.add("d", submitted_at=T0 - timedelta(hours=30))
        harness.add("e", status=RequestStatus.SUBMITTED, submitted_at=T0 - timedelta(hours=40))

        report = harness.poller.backlog()

        assert report.pending == 4
        assert report.oldest_age_seconds == 30 * 3600
        assert report.age_histogram == {"<1h": 1, "1h-6h": 1, "6h-24h": 1, ">24h": 1}

    def test_empty_backlog(self):
        report = build_backlog([], T0)
        assert report.pending == 0
        assert report.oldest_age_seconds is None
        assert report.as_dict()["age_histogram"][">24h"] == 0
