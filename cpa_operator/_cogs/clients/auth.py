"""
The operator-wide API context: the HTTP session with the credentials applied.

The operator logs in once at startup (see :mod:`piggybacking`) and puts the
context into a context variable, which is inherited by all the tasks spawned
later: the watchers, the workers, the reconciliations. The API functions get
the context injected by :func:`authenticated` instead of passing it around.
"""
import base64
import contextlib
import functools
import ssl
import tempfile
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any, TypeVar, cast

import aiohttp

from cpa_operator._cogs.helpers import versions
from cpa_operator._cogs.structs import credentials

context_var: ContextVar["APIContext"] = ContextVar('context_var')

_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    Inject the operator-wide API context into the ``context`` kwarg.

    An explicitly passed context is used as is (e.g. in tests).
    The streamed responses are remembered, so that they are closed on exit.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        context: APIContext | None = kwargs.get('context')
        if context is None:
            try:
                context = kwargs['context'] = context_var.get()
            except LookupError:
                raise RuntimeError("API context is not set: the operator is not logged in.")
        result = await fn(*args, **kwargs)
        if isinstance(result, aiohttp.ClientResponse):
            context.track(result)
        return result

    return cast(_F, wrapper)


class APIContext:
    """
    One aiohttp session per operator, plus the caches for the session's lifetime.

    The whole operator runs in one event loop, so the session is shared
    by all the tasks and is never re-created until the operator exits.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: str | None

    # {api_version: {plural: resource_info}}, as served by the discovery endpoints.
    discovered_resources: dict[str, dict[str, Any]]

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        self.server = info.server
        self.default_namespace = info.default_namespace
        self.discovered_resources = {}
        self._responses: list[aiohttp.ClientResponse] = []
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_headers(info),
            auth=aiohttp.BasicAuth(info.username, info.password)
                 if info.username and info.password else None,
        )

    def track(self, response: aiohttp.ClientResponse) -> None:
        self._responses[:] = [r for r in self._responses if not r.closed]
        if not response.closed:
            self._responses.append(response)

    async def close(self) -> None:
        # The pending watch-streams would block the session's closing otherwise.
        for response in self._responses:
            if not response.closed:
                response.close()
        self._responses.clear()
        await self.session.close()


def make_headers(info: credentials.ConnectionInfo) -> dict[str, str]:
    headers = {'User-Agent': f'cpa-operator/{versions.version or "unknown"}'}
    if info.scheme or info.token:
        scheme = info.scheme or 'Bearer'
        headers['Authorization'] = f'{scheme} {info.token}' if info.token else scheme
    return headers


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Build the SSL context for the server verification and the client certificate.

    The certificate & key given as data (not as paths) are written to temporary
    files only for the time of loading, since ``ssl`` accepts only the files.
    """
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )
    with contextlib.ExitStack() as stack:
        certfile = _as_file(stack, info.certificate_path, info.certificate_data)
        keyfile = _as_file(stack, info.private_key_path, info.private_key_data)
        if certfile and keyfile:
            context.load_cert_chain(certfile=certfile, keyfile=keyfile)

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _as_file(stack: contextlib.ExitStack, path: str | None, data: bytes | None) -> str | None:
    if path:
        return path
    if not data:
        return None
    tmp = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
    tmp.write(decode_to_pem(data).encode('ascii'))
    return tmp.name


def decode_to_pem(data: str | bytes) -> str:
    """ Accept either PEM as is, or base64-encoded PEM (as in kubeconfigs). """
    match data:
        case str() if data.startswith('-----BEGIN '):
            return data
        case bytes() if data.startswith(b'-----BEGIN '):
            return data.decode('ascii')
        case _:
            return base64.b64decode(data).decode('ascii')
