# errors.py
from typing import Optional


class PriceWatchError(Exception):
    """Base error rendered as a structured JSON response by the API"""

    status = 500

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, str]:
        body = {"message": self.message}
        if self.detail:
            body["error"] = self.detail
        return body


class InvalidInputError(PriceWatchError):
    """Missing or malformed query/body fields"""

    status = 400


class AuthenticationError(PriceWatchError):
    status = 401


class NotFoundError(PriceWatchError):
    """The record does not exist within the acting user's scope"""

    status = 404


class ConfigurationError(PriceWatchError):
    """A required server-side setting (e.g. an API credential) is absent"""

    status = 500


class UpstreamFetchError(PriceWatchError):
    """An external service call failed, timed out or answered non-2xx"""

    status = 502
