from typing import Optional

from .browser import BrowserSession, RenderingContext
from .config import Settings
from .errors import Outcome, ValidationError
from .log import log_info
from .models import EXPORT_FORMATS, CaptureFormat, CaptureOptions, CaptureResult, Task
from .network_guard import NetworkGuard
from .pipeline import prepare
from .pool import ContextFactory, ContextPool
from .reporting import ErrorReporter, LoggingReporter
from .retry import RetryOrchestrator
from .strategies import strategy_for


class CaptureEngine:
    """Everything a request handler needs to turn options into a capture."""

    def __init__(
        self,
        settings: Settings,
        context_factory: Optional[ContextFactory] = None,
        reporter: Optional[ErrorReporter] = None,
    ):
        self.settings = settings
        self._session: Optional[BrowserSession] = None
        if context_factory is None:
            self._session = BrowserSession(settings.browser_args)
            context_factory = self._session.new_context
        self.guard = NetworkGuard(allow_private_networks=settings.allow_private_networks)
        self.pool = ContextPool(
            context_factory,
            settings.max_concurrency,
            monitor=settings.monitor,
            monitor_interval=settings.monitor_interval,
        )
        self.reporter = reporter or LoggingReporter()
        self.orchestrator = RetryOrchestrator(
            retries=settings.max_retries,
            delay_ms=settings.retry_delay_ms,
            reporter=self.reporter,
        )

    async def start(self) -> None:
        if self._session is not None:
            await self._session.start()
        await self.pool.start()
        if not self.guard.enabled:
            log_info("[GUARD] Private networks are allowed, request interception disabled")

    async def close(self) -> None:
        await self.pool.close()
        if self._session is not None:
            await self._session.close()

    async def _capture_task(self, context: RenderingContext, task: Task) -> CaptureResult:
        await prepare(context, task.options, self.guard)
        return await strategy_for(task.format).capture(context.page, task.options)

    async def _execute(self, task: Task) -> Outcome:
        return await self.pool.execute(task, self._capture_task)

    async def export(self, options: CaptureOptions, capture_format: CaptureFormat) -> CaptureResult:
        if capture_format not in EXPORT_FORMATS:
            raise ValidationError(f"Unsupported format: {capture_format.value}")
        task = Task(options=options, format=capture_format)
        log_info(f"[TASK] {task.task_id} queued: {capture_format.value} of {options.target}")
        result = await self.orchestrator.run_with_retry(task, self._execute)
        log_info(f"[TASK] {task.task_id} completed ({result.content_type}, {result.size} bytes)")
        return result

    async def measure(self, options: CaptureOptions) -> CaptureResult:
        """Single-attempt measurement of navigation and resource timings."""
        task = Task(options=options, format=CaptureFormat.PERFORMANCE)
        log_info(f"[TASK] {task.task_id} queued: performance of {options.target}")
        outcome = await self._execute(task)
        return outcome.unwrap()
