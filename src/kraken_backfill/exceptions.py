"""Error taxonomy for trade history retrieval."""

from typing import Optional, Type


class KrakenError(Exception):
    """Base class for every error raised while fetching or decoding trades.

    ``pair`` and ``cursor`` describe the request that was in flight when the
    error happened, so a caller can resume from there.
    """

    def __init__(self, message: str, pair: Optional[str] = None, cursor: Optional[int] = None):
        super().__init__(message)
        self.pair = pair
        self.cursor = cursor


class TransportError(KrakenError):
    """Network-level failure before a status code was obtained."""


class DecodeError(KrakenError):
    """Malformed or missing field in a response body."""


class KrakenAPIError(KrakenError):
    """Endpoint answered with an error status or error payload."""

    status: int = 500
    description = "the endpoint returned an error"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None, **kwargs):
        super().__init__(message or self.description, **kwargs)
        if status is not None:
            self.status = status


class NotFoundError(KrakenAPIError):
    status = 404
    description = "the requested endpoint does not exist"


class BadRequestError(KrakenAPIError):
    status = 400
    description = "the request was malformed or its arguments were rejected"


class UnauthorizedError(KrakenAPIError):
    status = 401
    description = "the request credentials were rejected"


class ForbiddenError(KrakenAPIError):
    status = 403
    description = "access to the resource is not allowed"


class RateLimitedError(KrakenAPIError):
    status = 429
    description = "the rate limit for the endpoint was reached"


class ServiceUnavailableError(KrakenAPIError):
    status = 503
    description = "the service is unavailable or overloaded"


class InternalServerError(KrakenAPIError):
    status = 500
    description = "the endpoint failed with a server error"


_STATUS_ERRORS = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    429: RateLimitedError,
    500: InternalServerError,
    503: ServiceUnavailableError,
}

# Kraken reports some failures inside a 200 body; matched by prefix, first hit wins
_PAYLOAD_ERRORS = (
    ("EAPI:Rate limit", RateLimitedError),
    ("EService:Unavailable", ServiceUnavailableError),
    ("EService:Busy", ServiceUnavailableError),
    ("EAPI:Invalid key", UnauthorizedError),
    ("EAPI:Invalid signature", UnauthorizedError),
    ("EGeneral:Permission denied", ForbiddenError),
    ("EGeneral:Invalid arguments", BadRequestError),
    ("EQuery:", BadRequestError),
)


def error_for_status(status: int) -> Optional[Type[KrakenAPIError]]:
    """Return the error class for an HTTP status, or None for a success status."""
    if status < 400:
        return None
    return _STATUS_ERRORS.get(status, InternalServerError)


def error_for_payload(message: str) -> Type[KrakenAPIError]:
    """Return the error class for a Kraken ``error`` array entry."""
    for prefix, error_class in _PAYLOAD_ERRORS:
        if message.startswith(prefix):
            return error_class
    return InternalServerError
