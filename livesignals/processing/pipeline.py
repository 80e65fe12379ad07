"""
Signals Pipeline Orchestrator
=============================

Runs one end-to-end pass: client cache lookup, source fetch, bounded
concurrency summarization and result caching. Progress and state are
published on a ``PipelineRun`` that a presentation layer can observe.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from ..ai.summarization_chain import SummarizationChain
from ..config.settings import LiveSignalsSettings, get_settings
from ..ingestion.source_fetcher import SourceFetcher
from ..models import ProcessedItem, RawItem
from ..storage.client_cache import ClientCache
from ..utils.exceptions import handle_exception
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.validators import parse_timestamp


class PipelineState(str, Enum):
    """Lifecycle of a pipeline run."""
    IDLE = "idle"
    FETCHING = "fetching"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


@dataclass
class PipelineProgress:
    complete: int = 0
    total: int = 0


@dataclass
class PipelineRun:
    """Observable state of one pipeline run.

    ``cancel()`` clears the liveness flag: the run stops publishing state and
    discards its results, but requests already in flight are not aborted.
    """
    state: PipelineState = PipelineState.IDLE
    progress: PipelineProgress = field(default_factory=PipelineProgress)
    items: List[ProcessedItem] = field(default_factory=list)
    error_text: str = ""
    from_cache: bool = False
    alive: bool = True
    on_change: Optional[Callable[["PipelineRun"], None]] = field(default=None, repr=False)

    def cancel(self) -> None:
        self.alive = False

    def update(self, **changes) -> None:
        """Apply changes while the run is alive and notify the observer."""
        if not self.alive:
            return
        for name, value in changes.items():
            setattr(self, name, value)
        if self.on_change is not None:
            self.on_change(self)


def result_sort_key(item: ProcessedItem):
    ts = parse_timestamp(item.published_at or item.processed_at)
    return (ts is None, -(ts or 0.0))


class SignalsPipeline:
    """Fetch, summarize and cache a ranked set of processed items."""

    def __init__(
        self,
        fetcher: SourceFetcher,
        chain: SummarizationChain,
        client_cache: Optional[ClientCache] = None,
        settings: Optional[LiveSignalsSettings] = None,
        concurrency: Optional[int] = None,
    ):
        """Initialize pipeline.

        Args:
            fetcher: Source fetcher
            chain: Summarization chain
            client_cache: Result cache; None disables caching
            settings: Application settings (defaults to global settings)
            concurrency: Summarization worker count (defaults to settings)
        """
        self.settings = settings or get_settings()
        self.fetcher = fetcher
        self.chain = chain
        self.client_cache = client_cache
        self.concurrency = concurrency or self.settings.summarization.concurrency
        self.logger = get_logger_for_component("pipeline")

    async def run(self, max_items: Optional[int] = None, use_cache: bool = True,
                  run: Optional[PipelineRun] = None) -> PipelineRun:
        """Execute one pipeline pass.

        Args:
            max_items: Items to return (defaults to ``feeds.max_items``)
            use_cache: Serve a fresh client cache entry when present
            run: Run state to publish into; a new one is created when omitted

        Returns:
            The run, in ``ready`` or ``error`` state unless it was cancelled
        """
        run = run or PipelineRun()
        limit = max_items if max_items is not None else self.settings.feeds.max_items

        if use_cache and self.client_cache is not None:
            cached = self.client_cache.read()
            if cached is not None:
                self.logger.info(f"Serving {min(len(cached), limit)} cached items")
                run.update(items=cached[:limit], from_cache=True, state=PipelineState.READY)
                return run

        run.update(state=PipelineState.FETCHING, error_text="")
        try:
            with PerformanceLogger(self.logger, "source fetch"):
                raw = await self.fetcher.fetch_public_content_feeds(
                    max_items=limit + self.settings.feeds.fetch_headroom
                )
            selected = raw[:limit]
            if not run.alive:
                return run

            run.update(
                state=PipelineState.PROCESSING,
                progress=PipelineProgress(complete=0, total=len(selected)),
            )

            def on_progress(count: int) -> None:
                run.update(progress=PipelineProgress(complete=count, total=len(selected)))

            with PerformanceLogger(self.logger, "summarization", items=len(selected)):
                processed = await self.process_with_concurrency(selected, on_progress)
            if not run.alive:
                self.logger.debug("Run cancelled; discarding processed items")
                return run

            ranked = sorted(processed, key=result_sort_key)
            if self.client_cache is not None:
                self.client_cache.write(ranked)
            run.update(items=ranked, state=PipelineState.READY)

            fallback_count = sum(1 for item in ranked if item.provider.value == "fallback")
            self.logger.info(
                f"Pipeline ready: {len(ranked)} items ({fallback_count} fallback summaries)"
            )

        except Exception as e:
            error = handle_exception(e, self.logger, "pipeline run")
            run.update(state=PipelineState.ERROR, error_text=str(e) or error.user_message)

        return run

    async def process_with_concurrency(
        self,
        items: List[RawItem],
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> List[ProcessedItem]:
        """Summarize items with a fixed pool of worker coroutines.

        Output order follows completion order.
        """
        queue: asyncio.Queue = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        output: List[ProcessedItem] = []
        processed = 0

        async def worker_loop() -> None:
            nonlocal processed
            while True:
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                summary = await self.chain.process_content(item)
                output.append(
                    ProcessedItem.from_summary(item, summary, datetime.now(timezone.utc))
                )
                processed += 1
                if on_progress is not None:
                    on_progress(processed)

        await asyncio.gather(*(worker_loop() for _ in range(max(self.concurrency, 1))))
        return output
