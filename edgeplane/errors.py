"""
Error taxonomy for reconciliation.

Adapters classify every failure into one of these kinds. The convergence
engine only ever looks at the class of an error, never at its internals:

  NotFoundError          remote object absent; recovered by creating it again
  TransientError         network, timeout, rate limit; retried next pass
  PermanentError         bad auth, malformed parameters, exhausted quota
  KindUnsupportedError   no working adapter exists for the resource kind
"""

from typing import Iterable, Optional


# Platform error code returned when a DNS record does not exist.
RECORD_NOT_FOUND_CODE = 81044

_NOT_FOUND_MARKERS = ("not found", "does not exist")
_TRANSIENT_STATUS_CODES = {408, 425, 429}


class EdgePlaneError(Exception):
    """Base class for every classified reconciliation error."""
    pass


class NotFoundError(EdgePlaneError):
    """The remote object addressed by an identity binding is absent."""
    pass


class TransientError(EdgePlaneError):
    """A failure that is expected to clear without operator action."""
    pass


class PermanentError(EdgePlaneError):
    """A failure that needs a parameter or credential correction to clear."""
    pass


class InvalidParametersError(PermanentError):
    """Declared parameters cannot be turned into a valid remote request."""
    pass


class AccountResolutionError(PermanentError):
    """The account a resource belongs to could not be determined."""
    pass


class KindUnsupportedError(EdgePlaneError):
    """No implemented adapter is registered for a resource kind."""

    def __init__(self, kind: str, detail: str = ""):
        self.kind = kind
        self.detail = detail
        message = f"resource kind {kind!r} is not supported"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RemoteAPIError(Exception):
    """
    Raw failure surfaced by a transport client.

    Transport clients raise this; adapters convert it into the taxonomy
    with classify_api_error() before it reaches the engine.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_codes: Optional[Iterable[int]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_codes = list(error_codes or [])


def is_not_found(
    status_code: Optional[int],
    error_codes: Iterable[int],
    message: str,
) -> bool:
    """True when a remote failure means the addressed object is absent."""
    if status_code == 404:
        return True
    if RECORD_NOT_FOUND_CODE in error_codes:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


def is_transient(status_code: Optional[int]) -> bool:
    """True for status codes that the next scheduled pass may get past."""
    if status_code is None:
        return False
    return status_code in _TRANSIENT_STATUS_CODES or status_code >= 500


def classify_api_error(
    status_code: Optional[int],
    error_codes: Optional[Iterable[int]] = None,
    message: str = "",
) -> EdgePlaneError:
    """Map a remote API failure onto the reconciliation error taxonomy."""
    codes = list(error_codes or [])
    detail = message or f"remote API returned status {status_code}"
    if is_not_found(status_code, codes, message):
        return NotFoundError(detail)
    if is_transient(status_code):
        return TransientError(detail)
    return PermanentError(detail)


def classify_exception(exc: BaseException) -> EdgePlaneError:
    """
    Classify an arbitrary exception raised while talking to the remote side.

    Already-classified errors pass through unchanged. Connection problems and
    timeouts are transient; anything else unrecognized is permanent.
    """
    if isinstance(exc, EdgePlaneError):
        return exc
    if isinstance(exc, RemoteAPIError):
        return classify_api_error(exc.status_code, exc.error_codes, exc.message)
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return TransientError(str(exc) or exc.__class__.__name__)
    return PermanentError(str(exc) or exc.__class__.__name__)
