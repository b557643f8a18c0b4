"""Incident summary generation and the worker that drives it."""
import asyncio
import structlog
from .generative import GenerativeBackendError, SummaryBackend
from .prompts import ReportContent, build_prompt, fallback_content, parse_response
from ..metrics import Metrics
from ..models import Event, Report
from ..store.base import EventStore
from ..streaming.broadcaster import Broadcaster

log = structlog.get_logger()


class IncidentSummarizer:
    """
    Turns a suspicious event into a Report.

    The backend is called once per event with no inline retry. When it is
    unavailable, raises anything at all, or is not configured, the report is
    built from canned content for the event's type, so a Report is always
    produced.
    """

    def __init__(self, backend: SummaryBackend | None = None):
        self.backend = backend

    async def generate_summary(self, event: Event) -> Report:
        fallback = fallback_content(event.type, event.repo_name)

        if self.backend is None:
            return _to_report(event, fallback, source="fallback")

        try:
            text = await self.backend.generate(build_prompt(event))
        except GenerativeBackendError as e:
            log.warning(
                "summarizer.backend_failed",
                event_id=event.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return _to_report(event, fallback, source="fallback")
        except Exception as e:
            log.error(
                "summarizer.backend_crashed",
                event_id=event.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return _to_report(event, fallback, source="fallback")

        return _to_report(event, parse_response(text, fallback), source="model")


def _to_report(event: Event, content: ReportContent, source: str) -> Report:
    return Report(
        event_id=event.id,
        repo_name=event.repo_name,
        event_type=event.type,
        overall_summary=content.overall,
        root_cause=content.root_cause,
        impact=content.impact,
        next_steps=content.next_steps,
        source=source,
    )


class SummarizationWorker:
    """
    Drains unprocessed suspicious events into persisted, broadcast reports.

    Per-item failures leave the event unprocessed for a later cycle; a
    cycle-level failure waits ``error_delay`` before the next batch.
    """

    def __init__(
        self,
        store: EventStore,
        summarizer: IncidentSummarizer,
        broadcaster: Broadcaster | None = None,
        batch_size: int = 10,
        item_delay: float = 2.0,
        idle_delay: float = 15.0,
        error_delay: float = 30.0,
        metrics: Metrics | None = None,
    ):
        """
        Initialize worker.

        Args:
            store: Source of pending events and destination for reports
            summarizer: Report generator
            broadcaster: Receives every newly persisted report
            batch_size: Events read from the store per cycle
            item_delay: Seconds between items (backend rate limit)
            idle_delay: Seconds to wait after draining a batch
            error_delay: Seconds to wait after a cycle-level error
            metrics: Prometheus metrics (a private registry if omitted)
        """
        self.store = store
        self.summarizer = summarizer
        self.broadcaster = broadcaster
        self.batch_size = batch_size
        self.item_delay = item_delay
        self.idle_delay = idle_delay
        self.error_delay = error_delay
        self._metrics = metrics or Metrics()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the worker loop; no-op if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="gitmonitor-summarizer")
        log.info("summarizer.started", batch_size=self.batch_size)

    async def stop(self) -> None:
        """Stop after the current item and wait for the loop to exit."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        log.info("summarizer.stopped")

    async def process_event(self, event: Event) -> Report | None:
        """
        Generate, persist and publish the report for one event.

        An event that already has a report (a crash between persisting the
        report and marking the event) is only marked processed.

        Returns:
            The new report, or None if nothing new was produced
        """
        try:
            if await self.store.get_report(event.id) is not None:
                await self.store.mark_processed(event.id)
                log.info("summarizer.report_exists", event_id=event.id)
                return None

            report = await self.summarizer.generate_summary(event)
            await self.store.insert_report(report)
            await self.store.mark_processed(event.id)
        except Exception as e:
            log.error(
                "summarizer.event_failed",
                event_id=event.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None

        self._metrics.reports_generated_total.labels(source=report.source).inc()
        log.info(
            "summarizer.report_created",
            event_id=event.id,
            type=event.type,
            repo=event.repo_name,
            source=report.source,
        )
        if self.broadcaster is not None:
            await self.broadcaster.publish(report)
        return report

    async def run_batch(self) -> int:
        """
        Process one batch of pending events.

        Returns:
            Number of reports created
        """
        events = await self.store.list_unprocessed_suspicious_events(self.batch_size)
        created = 0
        for index, event in enumerate(events):
            if self._stop_event.is_set():
                break
            if await self.process_event(event) is not None:
                created += 1
            if index < len(events) - 1:
                await self._sleep(self.item_delay)
        return created

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_batch()
            except Exception as e:
                log.error("summarizer.cycle_failed", error=str(e), exc_info=True)
                delay = self.error_delay
            else:
                delay = self.idle_delay

            if self._stop_event.is_set():
                break
            await self._sleep(delay)
