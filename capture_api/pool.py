"""
Bounded pool of rendering contexts.

The pool holds a fixed number of slots, filled when it starts. A task checks
a context out with ``async with pool.acquire()``; when none is free the task
waits in arrival order. On release the used context is closed and a fresh one
takes its slot, so storage, cache and permissions never reach the next task.
"""
import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, List, Optional

from pydantic import BaseModel

from .browser import RenderingContext
from .errors import CaptureApiError, ExecutionError, Outcome, ShutdownError
from .log import log_error, log_info, log_warning
from .models import Task

ContextFactory = Callable[[int], Awaitable[RenderingContext]]
TaskHandler = Callable[[RenderingContext, Task], Awaitable[Any]]


class PoolStats(BaseModel):
    size: int
    active: int
    idle: int
    queued: int
    completed: int
    failed: int


class ContextPool:
    def __init__(
        self,
        factory: ContextFactory,
        max_concurrency: int = 15,
        *,
        monitor: bool = False,
        monitor_interval: float = 5.0,
        stats_hook: Optional[Callable[[PoolStats], None]] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._factory = factory
        self.max_concurrency = max_concurrency
        self.monitor = monitor
        self.monitor_interval = monitor_interval
        self._stats_hook = stats_hook or _log_stats
        self._contexts: List[RenderingContext] = []
        self._free: Deque[RenderingContext] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._completed = 0
        self._failed = 0
        self._started = False
        self._closing = False
        self._drained = asyncio.Event()
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def closing(self) -> bool:
        return self._closing

    async def start(self) -> None:
        if self._started:
            return
        for slot in range(self.max_concurrency):
            context = await self._factory(slot)
            self._contexts.append(context)
            self._free.append(context)
        self._started = True
        log_info(f"[POOL] Started with {self.max_concurrency} rendering contexts")
        if self.monitor:
            self._monitor_task = asyncio.create_task(self._monitor_loop())

    def stats(self) -> PoolStats:
        return PoolStats(
            size=len(self._contexts),
            active=len(self._contexts) - len(self._free),
            idle=len(self._free),
            queued=sum(1 for w in self._waiters if not w.done()),
            completed=self._completed,
            failed=self._failed,
        )

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[RenderingContext]:
        context = await self._checkout()
        try:
            yield context
        finally:
            await self._checkin(context)

    async def execute(self, task: Task, handler: TaskHandler) -> Outcome:
        """Run handler on a checked-out context and report how it ended."""
        try:
            async with self.acquire() as context:
                log_info(f"[TASK] {task.task_id} running {task.format.value} on context {context.slot}")
                value = await handler(context, task)
        except CaptureApiError as e:
            self._failed += 1
            return Outcome.failure(e)
        except Exception as e:
            self._failed += 1
            error = ExecutionError(f"{type(e).__name__}: {e}")
            error.__cause__ = e
            return Outcome.failure(error)
        self._completed += 1
        return Outcome.success(value)

    async def close(self) -> None:
        """Reject queued tasks, wait for running ones, then close every context."""
        if self._closing:
            return
        self._closing = True
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        rejected = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(ShutdownError("Pool is shutting down"))
                rejected += 1
        if rejected:
            log_warning(f"[POOL] Rejected {rejected} queued tasks during shutdown")

        in_flight = len(self._contexts) - len(self._free)
        if in_flight:
            log_info(f"[POOL] Waiting for {in_flight} in-flight tasks to finish")
            await self._drained.wait()

        for context in self._contexts:
            await context.close()
        self._contexts.clear()
        self._free.clear()
        log_info("[POOL] Closed")

    async def _checkout(self) -> RenderingContext:
        if self._closing:
            raise ShutdownError("Pool is shutting down")
        if not self._started:
            raise ExecutionError("Pool has not been started")
        if self._free and not self._waiters:
            return self._free.popleft()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            elif waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # a context was handed over just before the cancellation landed
                self._hand_off(waiter.result())
            raise

    async def _checkin(self, context: RenderingContext) -> None:
        context.uses += 1
        if not self._closing:
            context = await self._recycle(context)
        self._hand_off(context)

    def _hand_off(self, context: RenderingContext) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(context)
                return
        self._free.append(context)
        if self._closing and len(self._free) == len(self._contexts):
            self._drained.set()

    async def _recycle(self, context: RenderingContext) -> RenderingContext:
        """Swap a used context for a fresh one so no page state outlives its task."""
        if context.is_closed:
            log_warning(f"[POOL] Rendering context {context.slot} closed unexpectedly, replacing it")
        try:
            replacement = await self._factory(context.slot)
        except Exception as e:
            # keep the old one; the next release tries again
            log_error(f"[POOL] Could not replace rendering context {context.slot}: {e}")
            return context
        await context.close()
        self._contexts[self._contexts.index(context)] = replacement
        return replacement

    async def _monitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self.monitor_interval)
            self._stats_hook(self.stats())


def _log_stats(stats: PoolStats) -> None:
    log_info(
        f"[POOL] active={stats.active}/{stats.size} queued={stats.queued} "
        f"completed={stats.completed} failed={stats.failed}"
    )
