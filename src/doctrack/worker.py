"""Status poller process.

Usage:
    doctrack-poller            # loop on the configured interval
    doctrack-poller --once     # run a single reconciliation cycle and exit
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading

from doctrack.core.config import AppSettings
from doctrack.core.logging import configure_logging
from doctrack.persistence import create_persistence
from doctrack.processors import create_processor
from doctrack.services.notifications import NotificationDispatcher
from doctrack.services.poller import StatusPoller

logger = logging.getLogger(__name__)


def build_poller(settings: AppSettings) -> StatusPoller:
    tracking_store, _, message_bus = create_persistence(settings)
    return StatusPoller(
        tracking_store=tracking_store,
        processor=create_processor(settings),
        dispatcher=NotificationDispatcher(message_bus),
        config=settings.monitoring,
    )


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _stop(signum, _frame) -> None:
        logger.info("Received %s, finishing in-flight checks", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Reconcile tracked document requests")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    args = parser.parse_args(argv)

    settings = AppSettings()
    configure_logging(settings)
    poller = build_poller(settings)

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    if args.once:
        report = poller.run_cycle(stop_event)
        print(json.dumps(report.as_dict()))
        return
    poller.run_forever(stop_event)


if __name__ == "__main__":
    main()
