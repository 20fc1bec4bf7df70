"""Daily overdue external-return check."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import date
from typing import Optional

import schedule

from src.config import MonitorConfig
from src.ledger.batch_ledger import external_return_report
from src.models.batch import ExternalReturnReport
from src.query.record_reader import RecordReader

logger = logging.getLogger(__name__)


class OverdueReturnMonitor:
    """Check open external moves against their expected return dates.

    Runs on the ``schedule`` library in a daemon thread and hands the actual
    check to the app's event loop.
    """

    def __init__(self, config: MonitorConfig, reader: RecordReader, loop: asyncio.AbstractEventLoop):
        self.config = config
        self.reader = reader
        self.loop = loop
        self.last_report: Optional[ExternalReturnReport] = None
        self._scheduler = schedule.Scheduler()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if not self.config.enabled:
            logger.info("Overdue return monitor disabled in config")
            return

        self._scheduler.clear()
        for time_str in self.config.schedule:
            self._scheduler.every().day.at(time_str).do(self._check_job)

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_scheduler, daemon=True)
        self._thread.start()
        logger.info(
            "Overdue return monitor started with schedule: %s, due_soon_days=%d",
            self.config.schedule, self.config.due_soon_days,
        )

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._scheduler.clear()

    async def check(self, today: Optional[date] = None) -> ExternalReturnReport:
        moves = await self.reader.get_external_moves()
        report = external_return_report(moves, today or date.today(), self.config.due_soon_days)
        self.last_report = report
        for alert in report.overdue:
            logger.warning(
                "External return overdue by %d day(s): WO %s, %s, %d in flight",
                -alert.days_until_due, alert.move.work_order_id,
                alert.move.process, alert.in_flight_qty,
            )
        logger.info(
            "External return check: %d overdue, %d due soon",
            len(report.overdue), len(report.due_soon),
        )
        return report

    def _check_job(self) -> None:
        asyncio.run_coroutine_threadsafe(self.check(), self.loop)

    def _run_scheduler(self) -> None:
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            time.sleep(1)
