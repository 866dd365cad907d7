"""
Never-ending streams of the watch-events of one resource kind.

A stream starts with a listing: the existing objects are emitted as events
with the ``None`` type, followed by `Bookmark.LISTED`. Then the changes are
watched since the listing's resource version, reconnecting as the server
drops the long-polling requests. When the resource version expires
("410 Gone"), the stream starts over with a new listing.

The requests are closed client-side when the stopper future is done,
so that the operator's exit is not blocked by the pending long-polls.
"""
import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from typing import Any, cast

import aiohttp

from cpa_operator._cogs.clients import api, errors, fetching
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

HTTP_GONE = 410
HTTP_TOO_MANY_REQUESTS = 429
DEFAULT_THROTTLING_DELAY = 1
KNOWN_EVENT_TYPES = frozenset({'ADDED', 'MODIFIED', 'DELETED'})

# The disconnects that end one watch-request but not the stream as a whole.
DISCONNECTS = (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError)


class WatchingError(Exception):
    """ An ``ERROR`` event in the watch-stream other than "410 Gone". """


class Bookmark(enum.Enum):
    """ Markers interleaved with the raw events in the stream. """
    LISTED = enum.auto()  # all the existing objects are emitted, the changes follow.


async def infinite_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        label_selector: str | None = None,
        stopper: asyncio.Future[Any] | None = None,
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """
    Stream the events of the resource until stopped, restarting as needed.

    Only the unrecoverable errors escape: the API errors other than throttling,
    and the `WatchingError`. The throttled streams are retried after the delay
    as suggested by the server.
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    stopper = stopper if stopper is not None else asyncio.get_running_loop().create_future()
    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while not stopper.done():
            try:
                async for event in continuous_watch(
                    settings=settings,
                    resource=resource,
                    namespace=namespace,
                    label_selector=label_selector,
                    stopper=stopper,
                ):
                    yield event
            except errors.APIClientError as e:
                if e.status != HTTP_TOO_MANY_REQUESTS:
                    raise
                delay = (e.details or {}).get('retryAfterSeconds') or DEFAULT_THROTTLING_DELAY
                logger.warning(f"The watch-stream for {resource} {where} is throttled, "
                               f"will retry in {delay}s: {e}")
                await asyncio.sleep(delay)
            await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")


async def continuous_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        label_selector: str | None = None,
        stopper: asyncio.Future[Any],
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """ One listing and the watching since it, until the resource version expires. """
    try:
        objs, resource_version = await fetching.list_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            label_selector=label_selector,
            logger=logger,
        )
    except DISCONNECTS:
        return

    for obj in objs:
        yield {'type': None, 'object': obj}
    yield Bookmark.LISTED

    while not stopper.done():
        async for raw_input in watch_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            label_selector=label_selector,
            since=resource_version,
            stopper=stopper,
        ):
            raw_type = raw_input['type']
            if raw_type == 'ERROR':
                error = cast(bodies.RawError, raw_input['object'])
                if error.get('code') == HTTP_GONE:
                    logger.debug(f"Resource version {resource_version} of {resource} has expired.")
                    return
                raise WatchingError(f"Error in the watch-stream: {error}")

            if raw_type not in KNOWN_EVENT_TYPES:
                logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                continue

            # The reconnects continue from the last seen object, not from the listing.
            body = cast(bodies.RawBody, raw_input['object'])
            resource_version = body.get('metadata', {}).get('resourceVersion', resource_version)
            yield cast(bodies.RawEvent, raw_input)


async def watch_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        label_selector: str | None = None,
        since: str | None = None,
        stopper: asyncio.Future[Any],
) -> AsyncIterator[bodies.RawInput]:
    """
    One watch-request: the raw inputs until the connection is closed.

    The namespace ``None`` means the cluster-wide watching.
    """
    params: dict[str, str] = {'watch': 'true'}
    if since is not None:
        params['resourceVersion'] = since
    if label_selector is not None:
        params['labelSelector'] = label_selector
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    timeout = aiohttp.ClientTimeout(
        total=settings.watching.client_timeout,
        sock_connect=next((t for t in (
            settings.watching.connect_timeout,
            settings.networking.connect_timeout,
            settings.networking.request_timeout,
        ) if t is not None), None),
    )
    try:
        async for raw_input in api.stream(
            url=resource.get_url(namespace=namespace, params=params),
            settings=settings,
            stopper=stopper,
            timeout=timeout,
            logger=logger,
        ):
            yield raw_input
    except DISCONNECTS:
        pass
