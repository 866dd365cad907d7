"""
The outcomes of the reconciliation: results and the errors' taxonomy.

The reconciliation either returns a result (maybe asking for a requeue),
or raises. How the raised errors are treated depends on their class:

* `PermanentError` (e.g. `ValidationError`) -- logged, not retried:
  the same input will fail the same way, so only a change can fix it.
* `TemporaryError` -- retried after the error's own delay.
* `InvariantViolationError` -- fatal: the operator stops.
* Any other exception (API errors, network errors, timeouts, conflicts)
  -- retried with the configured backoffs.

The decision is made by the per-identity workers, not by the reconciliation:
see :mod:`cpa_operator._core.reactor.queueing`.
"""
import dataclasses

# The default delay duration for the temporary errors.
DEFAULT_RETRY_DELAY = 1 * 60


@dataclasses.dataclass(frozen=True)
class Result:
    """ A successful outcome, maybe with a request to re-run after a delay. """
    requeue: bool = False
    delay: float | None = None


class PermanentError(Exception):
    """ A fatal reconciliation error, the retries are useless. """


class TemporaryError(Exception):
    """ A potentially recoverable error, should be retried. """
    def __init__(
            self,
            __msg: str | None = None,
            delay: float | None = DEFAULT_RETRY_DELAY,
    ) -> None:
        super().__init__(__msg)
        self.delay = delay


class ValidationError(PermanentError):
    """ The declared resource is invalid; nothing was changed in the cluster. """


class InvariantViolationError(RuntimeError):
    """ Something that can never happen has happened. The operator should stop. """
