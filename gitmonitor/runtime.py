"""Composition root: builds the pipeline services and owns their lifecycle."""
from dataclasses import dataclass
import structlog
from .config import Settings
from .metrics import Metrics
from .rules.classifier import Classifier
from .services.generative import GeminiClient
from .services.github_client import GitHubEventsClient
from .services.poller import Backoff, Poller
from .services.summarizer import IncidentSummarizer, SummarizationWorker
from .store import EventStore, create_store
from .streaming.broadcaster import Broadcaster

log = structlog.get_logger()


@dataclass
class Services:
    """The running pipeline, passed explicitly to whatever needs it."""
    settings: Settings
    metrics: Metrics
    store: EventStore
    classifier: Classifier
    broadcaster: Broadcaster
    github_client: GitHubEventsClient
    summarizer: IncidentSummarizer
    poller: Poller
    worker: SummarizationWorker

    async def start(self) -> None:
        await self.broadcaster.start()
        await self.poller.start()
        await self.worker.start()

    async def stop(self) -> None:
        """Stop the loops; in-flight summarization is not drained."""
        await self.poller.stop()
        await self.worker.stop()
        await self.broadcaster.stop()

    async def close(self) -> None:
        await self.stop()
        await self.github_client.aclose()
        backend = self.summarizer.backend
        if isinstance(backend, GeminiClient):
            await backend.aclose()
        await self.store.close()


def build_services(
    settings: Settings,
    metrics: Metrics,
    store: EventStore | None = None,
    github_client: GitHubEventsClient | None = None,
) -> Services:
    """
    Construct every pipeline component from settings.

    The store is returned uninitialized; await ``store.initialize()``
    before starting.
    """
    store = store or create_store(settings)
    classifier = Classifier(
        protected_branches=settings.protected_branches,
        large_push_threshold=settings.LARGE_PUSH_THRESHOLD,
    )
    broadcaster = Broadcaster(heartbeat_interval=settings.HEARTBEAT_INTERVAL_SECONDS, metrics=metrics)

    if not settings.GITHUB_TOKEN:
        log.warning("config.github_token_missing", detail="unauthenticated requests are heavily rate limited")
    github_client = github_client or GitHubEventsClient(
        events_url=settings.GITHUB_EVENTS_URL,
        token=settings.GITHUB_TOKEN,
        per_page=settings.GITHUB_PER_PAGE,
        timeout_s=settings.GITHUB_TIMEOUT_SECONDS,
    )

    backend = None
    if settings.GEMINI_API_KEY:
        backend = GeminiClient(
            api_key=settings.GEMINI_API_KEY,
            api_url=settings.GEMINI_API_URL,
            timeout_s=settings.GEMINI_TIMEOUT_SECONDS,
        )
    else:
        log.warning("config.gemini_api_key_missing", detail="all reports will use canned fallback content")
    summarizer = IncidentSummarizer(backend)

    poller = Poller(
        client=github_client,
        store=store,
        classifier=classifier,
        poll_interval=settings.POLL_INTERVAL_SECONDS,
        backoff=Backoff(
            initial=settings.BACKOFF_INITIAL_SECONDS,
            ceiling=settings.BACKOFF_MAX_SECONDS,
            floor=settings.BACKOFF_FLOOR_SECONDS,
        ),
        metrics=metrics,
    )
    worker = SummarizationWorker(
        store=store,
        summarizer=summarizer,
        broadcaster=broadcaster,
        batch_size=settings.WORKER_BATCH_SIZE,
        item_delay=settings.WORKER_ITEM_DELAY_SECONDS,
        idle_delay=settings.WORKER_IDLE_DELAY_SECONDS,
        error_delay=settings.WORKER_ERROR_DELAY_SECONDS,
        metrics=metrics,
    )

    return Services(
        settings=settings,
        metrics=metrics,
        store=store,
        classifier=classifier,
        broadcaster=broadcaster,
        github_client=github_client,
        summarizer=summarizer,
        poller=poller,
        worker=worker,
    )
