"""
The credentials to access the K8s API, as retrieved by the login functions.

Only what a generic HTTP client needs: the server URL, the TLS settings
(the CA, the client certificate & key), the HTTP authorization (a token
or a username & password), and the default namespace of the context.

.. seealso::
    :mod:`cpa_operator._core.intents.piggybacking`.
"""
import dataclasses


class LoginError(Exception):
    """ Raised when the operator cannot login to the API. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """ One API server with the credentials to access it. """
    server: str  # e.g. "https://localhost:443"
    ca_path: str | None = None
    ca_data: bytes | None = None
    insecure: bool | None = None
    username: str | None = None
    password: str | None = None
    scheme: str | None = None  # RFC-7235/5.1: e.g. Bearer, Basic, Digest, etc.
    token: str | None = None
    certificate_path: str | None = None
    certificate_data: bytes | None = None
    private_key_path: str | None = None
    private_key_data: bytes | None = None
    default_namespace: str | None = None
