"""
The raw HTTP calls to the K8s API: JSON in, JSON out, with retries.

Only the transient failures are retried here: connection errors, timeouts,
and HTTP 5xx, as configured in ``settings.networking.error_backoffs``.
Other HTTP errors are raised immediately as `errors.APIError` subclasses,
and the higher levels decide what to do with them.
"""
import asyncio
import functools
import json
from collections.abc import AsyncIterator, Iterable
from typing import Any

import aiohttp

from cpa_operator._cogs.clients import auth, errors
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs

RETRYABLE_ERRORS = (aiohttp.ClientConnectionError, errors.APIServerError, asyncio.TimeoutError)


def get_backoffs(settings: configuration.OperatorSettings) -> list[float]:
    backoffs = settings.networking.error_backoffs
    return list(backoffs) if isinstance(backoffs, Iterable) else [backoffs]


@auth.authenticated
async def request(
        method: str,
        url: str,  # relative to the server's root, unless absolute.
        *,
        settings: configuration.OperatorSettings,
        payload: object | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        context: auth.APIContext | None = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Make a request and return the successful response unread.

    The caller is responsible for releasing the response (``async with``).
    """
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")

    if '://' not in url:
        url = f"{context.server.rstrip('/')}/{url.lstrip('/')}"
    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    what = f"{method.upper()} {url}"
    backoffs = get_backoffs(settings)
    attempts = len(backoffs) + 1
    for attempt in range(1, attempts + 1):
        try:
            response = await context.session.request(method, url, json=payload, timeout=timeout)
            await errors.check_response(response)
        except RETRYABLE_ERRORS as e:
            if attempt == attempts:
                logger.error(f"Request attempt #{attempt}/{attempts} failed; escalating: {what} -> {e!r}")
                raise
            logger.error(f"Request attempt #{attempt}/{attempts} failed; will retry: {what} -> {e!r}")
            await asyncio.sleep(backoffs[attempt - 1])
        else:
            if attempt > 1:
                logger.debug(f"Request attempt #{attempt}/{attempts} succeeded: {what}")
            return response

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.


async def call(
        method: str,
        url: str,
        *,
        settings: configuration.OperatorSettings,
        payload: object | None = None,
        logger: typedefs.Logger,
) -> Any:
    """ Make a request and return its parsed JSON body, releasing the connection. """
    response = await request(method, url, payload=payload, settings=settings, logger=logger)
    async with response:
        return await response.json()


get = functools.partial(call, 'get')
post = functools.partial(call, 'post')
put = functools.partial(call, 'put')
delete = functools.partial(call, 'delete')


async def stream(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        timeout: aiohttp.ClientTimeout | None = None,
        stopper: asyncio.Future[Any] | None = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """
    Stream the JSON lines of a long-polling GET request.

    When the stopper is done, the response is closed client-side: the stream
    then ends quietly instead of failing with the connection error.
    """
    response = await request('get', url, timeout=timeout, settings=settings, logger=logger)

    def close(_: asyncio.Future[Any]) -> None:
        response.close()

    if stopper is not None:
        stopper.add_done_callback(close)
    try:
        async with response:
            async for line in iter_jsonlines(response.content):
                yield json.loads(line.decode('utf-8'))
    except aiohttp.ClientConnectionError:
        if stopper is None or not stopper.done():
            raise
    finally:
        if stopper is not None:
            stopper.remove_done_callback(close)


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Iterate over the non-empty lines of a streamed response.

    The aiohttp's own line iteration fails on the lines longer than its
    buffer limits (128 KiB), while the objects with big pod templates
    can be longer than that. So, the chunks are split into lines here.
    """
    buffer = b''
    async for chunk in content.iter_chunked(chunk_size):
        buffer += chunk
        *lines, buffer = buffer.split(b'\n')
        for line in lines:
            if line:
                yield line
    if buffer:
        yield buffer
