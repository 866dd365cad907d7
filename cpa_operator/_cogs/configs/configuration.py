"""
All configuration flags, options, settings to fine-tune the operator.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import dataclasses
from collections.abc import Iterable, Sequence


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the API requests (except the watch-streams).
    Measured in seconds. ``None`` means no timeout.
    """

    connect_timeout: float | None = None
    """
    A timeout for establishing the connections (TCP & SSL).
    If ``None``, only the total request timeout is used.
    """

    error_backoffs: float | Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21)
    """
    Backoff intervals in case of retryable API errors:
    connection errors, timeouts, HTTP 5xx server errors.

    The number of intervals defines the number of retries (+1 for the first
    attempt). An empty sequence disables the retries: the errors escalate
    immediately to the reconciliation, which has its own requeueing.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: float | None = None
    """
    The maximum duration of one streaming request. Patched in some tests.
    If ``None``, then obey the server-side timeouts (they seem to be random).
    """

    client_timeout: float | None = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    """

    connect_timeout: float | None = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between watch requests (to prevent API flooding).
    """


@dataclasses.dataclass
class QueueingSettings:

    idle_timeout: float = 5.0
    """
    How soon an idle per-identity worker exits if no new triggers arrive.
    A new worker is spawned when (and if) new triggers arrive later.
    """

    exit_timeout: float = 2.0
    """
    How long to wait for the workers to finish when the operator is stopping.
    The workers still running after that are cancelled.
    """


@dataclasses.dataclass
class ReconcilingSettings:

    error_backoffs: Sequence[float] = (1, 2, 5, 10, 30, 60)
    """
    Delays before re-running a failed reconciliation of the same identity.

    The n-th consecutive failure uses the n-th delay; once the sequence
    is exhausted, its last value is used for all further failures.
    A successful reconciliation resets the counter.
    """

    secondary_selector: str = 'app.kubernetes.io/managed-by=custom-pod-autoscaler-operator'
    """
    A label selector for watching the generated (secondary) objects.
    Only the deletions of those objects trigger the reconciliation.
    """


@dataclasses.dataclass
class OperatorSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    queueing: QueueingSettings = dataclasses.field(default_factory=QueueingSettings)
    reconciling: ReconcilingSettings = dataclasses.field(default_factory=ReconcilingSettings)
