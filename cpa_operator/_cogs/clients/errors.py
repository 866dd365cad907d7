"""
K8s API errors, independent of the HTTP client library.

The HTTP statuses that matter to the reconciliation get their own classes:
e.g. "404 Not Found" is normal when reading the objects that might be absent,
and "409 Conflict" means that the object was changed since it was read.
Everything else is raised as either a client-side or a server-side error.

The low-level networking errors (connections, SSL, timeouts) are not wrapped:
they escalate from the client library as is. The original HTTP error is kept
as the cause of our own error.
"""
import collections.abc
import json
from collections.abc import Collection, Mapping
from typing import Literal

import aiohttp
from typing_extensions import TypedDict


class RawStatusCause(TypedDict, total=False):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict, total=False):
    name: str
    kind: str
    group: str
    uid: str
    retryAfterSeconds: int
    causes: Collection[RawStatusCause]


# https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/status/
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):
    """ An HTTP error from the API, with the ``Status`` body if it was served. """

    def __init__(self, payload: RawStatus | None, *, status: int) -> None:
        super().__init__(payload.get('message') if payload else None, payload)
        self.status = status
        self.payload = payload

    @property
    def code(self) -> int | None:
        return self.payload.get('code') if self.payload else None

    @property
    def reason(self) -> str | None:
        return self.payload.get('reason') if self.payload else None

    @property
    def message(self) -> str | None:
        return self.payload.get('message') if self.payload else None

    @property
    def details(self) -> RawStatusDetails | None:
        return self.payload.get('details') if self.payload else None


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


SPECIFIC_ERRORS: Mapping[int, type[APIClientError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
}


async def check_response(response: aiohttp.ClientResponse) -> None:
    """ Raise an `APIError` of the status-specific class if the response failed. """
    if response.status < 400:
        return

    # The body must be read before raise_for_status(), which releases the response.
    try:
        payload = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        payload = None

    # Only a Status is safe to carry around: other bodies might contain secrets.
    if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
        payload = None

    cls: type[APIError]
    if response.status >= 500:
        cls = APIServerError
    else:
        cls = SPECIFIC_ERRORS.get(response.status, APIClientError)

    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
