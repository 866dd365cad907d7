"""
The top-level orchestration of the operator's tasks.

The operator logs in, starts one watcher per watched resource & namespace,
feeds the triggered identities to the work queue, and runs until stopped:
by a signal (SIGINT/SIGTERM), by an external stop-flag, or by a failure
of any watcher or any worker (the unrecoverable errors only).
"""
import asyncio
import functools
import logging
import signal
import threading
from collections.abc import Collection
from typing import Any

from cpa_operator._cogs.clients import auth, watching
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.structs import references
from cpa_operator._core.actions import reconciliation
from cpa_operator._core.intents import filters, piggybacking
from cpa_operator._core.reactor import queueing

logger = logging.getLogger(__name__)

# The generated objects: their deletion triggers the owning autoscaler's reconciliation.
SECONDARY_RESOURCES: Collection[references.Resource] = (
    references.SERVICEACCOUNTS,
    references.ROLES,
    references.ROLEBINDINGS,
    references.PODS,
)


def run(
        *,
        settings: configuration.OperatorSettings | None = None,
        clusterwide: bool = False,
        namespaces: Collection[references.NamespaceName] = (),
        stop_flag: asyncio.Future[None] | None = None,
) -> None:
    """
    Run the whole operator synchronously.

    This function should be used to run an operator in normal sync mode.
    """
    try:
        asyncio.run(operator(
            settings=settings,
            clusterwide=clusterwide,
            namespaces=namespaces,
            stop_flag=stop_flag,
        ))
    except asyncio.CancelledError:
        pass


async def operator(
        *,
        settings: configuration.OperatorSettings | None = None,
        clusterwide: bool = False,
        namespaces: Collection[references.NamespaceName] = (),
        stop_flag: asyncio.Future[None] | None = None,
) -> None:
    """
    Run the whole operator asynchronously.

    This function should be used to run an operator in an asyncio event-loop
    if the operator is orchestrated explicitly and manually.
    """
    settings = settings if settings is not None else configuration.OperatorSettings()
    if not clusterwide and not namespaces:
        logger.warning("Neither -n/--namespace nor -A/--all-namespaces is specified: "
                       "serving all namespaces cluster-wide.")
        clusterwide = True

    info = piggybacking.login(logger=logger)
    context = auth.APIContext(info)
    token = auth.context_var.set(context)
    try:
        await serve(
            settings=settings,
            namespaces=[None] if clusterwide else list(namespaces),
            stop_flag=stop_flag,
        )
    finally:
        auth.context_var.reset(token)
        await context.close()


async def serve(
        *,
        settings: configuration.OperatorSettings,
        namespaces: Collection[references.Namespace],
        stop_flag: asyncio.Future[None] | None = None,
) -> None:
    """
    Watch the resources and reconcile the autoscalers until stopped.

    The API context must be already set up (see :func:`operator`).
    """
    loop = asyncio.get_running_loop()
    stopper: asyncio.Future[signal.Signals | BaseException | None] = loop.create_future()

    def escalate(exc: BaseException) -> None:
        if not stopper.done():
            stopper.set_result(exc)

    queue = queueing.WorkQueue(
        settings=settings,
        reconciler=functools.partial(reconciliation.reconcile, settings=settings),
        exception_handler=escalate,
    )

    tasks: list[asyncio.Task[None]] = []
    for namespace in namespaces:
        tasks.append(asyncio.create_task(watcher(
            settings=settings,
            resource=references.AUTOSCALERS,
            role=filters.ObjectRole.PRIMARY,
            namespace=namespace,
            queue=queue,
            stopper=stopper,
        ), name=f'watcher for {references.AUTOSCALERS} in {namespace or "all namespaces"}'))
        for resource in SECONDARY_RESOURCES:
            tasks.append(asyncio.create_task(watcher(
                settings=settings,
                resource=resource,
                role=filters.ObjectRole.SECONDARY,
                namespace=namespace,
                queue=queue,
                stopper=stopper,
                label_selector=settings.reconciling.secondary_selector,
            ), name=f'watcher for {resource} in {namespace or "all namespaces"}'))
    for task in tasks:
        task.add_done_callback(functools.partial(_watcher_done, escalate=escalate))

    # On Ctrl+C or pod termination, stop all the tasks gracefully.
    if threading.current_thread() is threading.main_thread():
        try:
            loop.add_signal_handler(signal.SIGINT, escalate_signal, stopper, signal.SIGINT)
            loop.add_signal_handler(signal.SIGTERM, escalate_signal, stopper, signal.SIGTERM)
        except NotImplementedError:
            logger.warning("OS signals are ignored: can't add signal handler in Windows.")
    else:
        logger.warning("OS signals are ignored: running not in the main thread.")

    try:
        waiters: list[asyncio.Future[Any]] = [stopper]
        if stop_flag is not None:
            waiters.append(stop_flag)
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not stopper.done():
            stopper.set_result(None)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await queue.close()
        if threading.current_thread() is threading.main_thread():
            try:
                loop.remove_signal_handler(signal.SIGINT)
                loop.remove_signal_handler(signal.SIGTERM)
            except NotImplementedError:
                pass

    reason = stopper.result()
    if isinstance(reason, signal.Signals):
        logger.info("Signal %s is received. Operator is stopping.", reason.name)
    elif isinstance(reason, BaseException):
        raise RuntimeError("Reconciliation has failed with an unrecoverable error. "
                           "The operator will stop to prevent damage.") from reason
    else:
        logger.info("Stop-flag is raised. Operator is stopping.")


async def watcher(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        role: filters.ObjectRole,
        namespace: references.Namespace,
        queue: queueing.WorkQueue,
        stopper: asyncio.Future[Any] | None = None,
        label_selector: str | None = None,
) -> None:
    """
    Watch one resource kind in one namespace (or cluster-wide), and feed the queue.

    The watch-events are filtered: only those that trigger a reconciliation
    get into the queue, as the identities of the owning autoscalers.
    """
    stream = watching.infinite_watch(
        settings=settings,
        resource=resource,
        namespace=namespace,
        label_selector=label_selector,
        stopper=stopper,
    )
    async for raw_event in stream:
        if isinstance(raw_event, watching.Bookmark):
            continue

        notification = filters.classify(raw_event['type'])
        if not filters.triggers_reconciliation(role, notification):
            continue

        identity = filters.get_identity(role, raw_event['object'])
        if identity is None:
            continue

        logger.debug(f"Reconciliation of {identity} is triggered by {notification} of {resource}.")
        queue.enqueue(identity)


def escalate_signal(stopper: asyncio.Future[Any], signum: signal.Signals) -> None:
    if not stopper.done():
        stopper.set_result(signum)


def _watcher_done(task: asyncio.Task[None], *, escalate: queueing.ExceptionHandler) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"{task.get_name()} has failed: {exc!r}")
        escalate(exc)
