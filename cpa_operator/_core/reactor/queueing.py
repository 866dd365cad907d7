"""
The per-autoscaler work queue: one worker per identity, at most one run at a time.

The watchers push the identities of the autoscalers to reconcile. Every
identity gets its own worker task, created on demand. The reconciliation
of one autoscaler is strictly sequential, while different autoscalers
are reconciled in parallel.

The triggers that arrive while the identity's reconciliation is running
are not queued one by one: they are coalesced into one extra run after the
current one, since every run starts from the freshly read state anyway.

The failed runs are retried with the configured backoffs; the runs that
ask for it are repeated after the requested delay. The workers exit when
there is nothing to do for some time, and are re-created on new triggers.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, MutableMapping

from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.structs import references
from cpa_operator._core.actions import execution

logger = logging.getLogger(__name__)

Reconciler = Callable[[references.NamespacedName], Awaitable[execution.Result]]
ExceptionHandler = Callable[[BaseException], None]


class WorkQueue:
    """
    A dispatcher of the reconciliations per identity.

    An unrecoverable error in any worker (`execution.InvariantViolationError`)
    is passed to the exception handler, which is expected to stop the operator.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            reconciler: Reconciler,
            exception_handler: ExceptionHandler | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.reconciler = reconciler
        self.exception_handler = exception_handler
        self._pressures: MutableMapping[references.NamespacedName, asyncio.Event] = {}
        self._tasks: MutableMapping[references.NamespacedName, asyncio.Task[None]] = {}
        self._closing = False

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, identity: references.NamespacedName) -> bool:
        return identity in self._tasks

    def enqueue(self, identity: references.NamespacedName) -> None:
        """ Request a reconciliation of the identity: now, or after the current one. """
        if self._closing:
            return

        # Wake up the existing worker (if any): it will run once more, but only once.
        try:
            self._pressures[identity].set()
            return
        except KeyError:
            pass

        pressure = asyncio.Event()
        pressure.set()
        self._pressures[identity] = pressure
        task = asyncio.create_task(self._worker(identity, pressure), name=f'worker for {identity}')
        task.add_done_callback(self._escalate)
        self._tasks[identity] = task

    async def close(self) -> None:
        """
        Stop accepting new triggers and stop all the workers.

        The running reconciliations are given some time to finish gracefully
        (``settings.queueing.exit_timeout``); then they are cancelled.
        """
        self._closing = True
        for pressure in self._pressures.values():
            pressure.set()  # wake up the idling and backing-off workers, so that they exit.

        tasks = list(self._tasks.values())
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.settings.queueing.exit_timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Unfinished reconciliations are cancelled: {len(pending)}.")
                await asyncio.wait(pending)

    async def _worker(
            self,
            identity: references.NamespacedName,
            pressure: asyncio.Event,
    ) -> None:
        delay: float | None = None  # None means no reruns are expected: only new triggers.
        failures = 0
        try:
            while not self._closing:

                # Either wait for the triggers, or for the time of a rerun, whatever comes first.
                # IMPORTANT: There MUST be NO await between the emptiness check and the exit,
                # so that no new triggers sneak in and get lost with this worker.
                timeout = delay if delay is not None else self.settings.queueing.idle_timeout
                try:
                    await asyncio.wait_for(pressure.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    if delay is None and not pressure.is_set():
                        break

                if self._closing:
                    break

                pressure.clear()
                delay, failures = await self._process(identity, failures=failures)

        except execution.InvariantViolationError:
            logger.exception(f"Reconciliation has failed with an unrecoverable error for {identity}.")
            raise

        finally:
            del self._pressures[identity]
            del self._tasks[identity]

    async def _process(
            self,
            identity: references.NamespacedName,
            *,
            failures: int,
    ) -> tuple[float | None, int]:
        """ Reconcile once. Return the delay till the rerun (if any), and the failures count. """
        backoffs = self.settings.reconciling.error_backoffs
        backoff = backoffs[min(failures, len(backoffs) - 1)] if backoffs else 0
        try:
            result = await self.reconciler(identity)
        except execution.PermanentError as e:
            logger.error(f"Reconciliation has failed permanently for {identity}: {e}")
            return None, 0
        except execution.TemporaryError as e:
            delay = e.delay if e.delay is not None else backoff
            logger.warning(f"Reconciliation has failed temporarily for {identity}, "
                           f"will retry in {delay}s: {e}")
            return delay, failures + 1
        except execution.InvariantViolationError:
            raise
        except Exception as e:
            logger.exception(f"Reconciliation has failed for {identity}, "
                             f"will retry in {backoff}s: {e!r}")
            return backoff, failures + 1

        if result.delay is not None:
            return result.delay, 0
        elif result.requeue:
            return (backoffs[0] if backoffs else 0), 0
        else:
            return None, 0

    def _escalate(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self.exception_handler is not None:
            self.exception_handler(exc)
