"""Publishing executor: wires the orchestrator to signals, duration and display."""

from __future__ import annotations

import asyncio
import logging
import signal
import time

from rich.console import Console
from rich.live import Live

from pubstress.cancellation import CancellationSource, cancellable_sleep
from pubstress.errors import PublishCancelledError
from pubstress.executor.result import ExecutionResult
from pubstress.executor.stats import StatsDisplay
from pubstress.kafka.client import ClientFactory, create_client
from pubstress.kafka.publisher import PublishOrchestrator
from pubstress.models.config import PublisherConfig
from pubstress.models.errors import ErrorCollector
from pubstress.models.metrics import PublisherMetrics
from pubstress.runtime import shutdown_executor

console = Console()
logger = logging.getLogger(__name__)

DISPLAY_REFRESH_SECONDS = 0.5


class PublishExecutor:
    """Runs one publisher for a fixed duration or until interrupted."""

    def __init__(
        self,
        config: PublisherConfig,
        client_factory: ClientFactory = create_client,
        show_display: bool = True,
    ):
        self.config = config
        self.show_display = show_display
        self.metrics = PublisherMetrics()
        self.errors = ErrorCollector()
        self.orchestrator = PublishOrchestrator(
            config=config,
            metrics=self.metrics,
            errors=self.errors,
            client_factory=client_factory,
        )
        self.stats_display = StatsDisplay(config, self.errors)
        self._cancellation = CancellationSource()

    def request_stop(self) -> None:
        """Request the publisher to stop."""
        self._cancellation.cancel()

    @property
    def should_stop(self) -> bool:
        return self._cancellation.is_cancelled

    async def _stop_after(self, duration_seconds: float) -> None:
        if duration_seconds <= 0:
            return
        try:
            await cancellable_sleep(duration_seconds, self._cancellation.token)
        except PublishCancelledError:
            return
        console.print("\n[dim]Duration reached, stopping publisher...[/dim]")
        self.request_stop()

    def _render(self):
        return self.stats_display.generate_stats_table(
            self.metrics.snapshot(), self.orchestrator.generations
        )

    async def run(self, duration_seconds: float) -> ExecutionResult:
        """Run the publisher and collect the result."""
        result = ExecutionResult()
        start_time = time.time()

        publisher = asyncio.create_task(self.orchestrator.start(self._cancellation.token))
        timer = asyncio.create_task(self._stop_after(duration_seconds))

        try:
            if self.show_display:
                with Live(self._render(), refresh_per_second=4, console=console) as live:
                    while not publisher.done():
                        live.update(self._render())
                        await asyncio.wait({publisher}, timeout=DISPLAY_REFRESH_SECONDS)
                    live.update(self._render())
            await publisher
        finally:
            self.request_stop()
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)

        result.metrics = self.metrics.snapshot()
        result.generations = self.orchestrator.generations
        result.add_errors(self.errors.snapshot())
        result.duration_seconds = time.time() - start_time
        return result

    async def execute(self, duration_seconds: float) -> ExecutionResult:
        """Execute the publisher with signal handling."""
        loop = asyncio.get_running_loop()

        def signal_handler():
            console.print("\n[yellow]Shutting down gracefully...[/yellow]")
            self.request_stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            return await self.run(duration_seconds)
        finally:
            shutdown_executor()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
