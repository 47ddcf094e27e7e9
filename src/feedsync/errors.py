"""Error taxonomy for feed fetching, syncing, storage and OPML handling."""

import socket
import ssl
from enum import Enum
from typing import Iterator, Optional

import httpx


class FeedSyncError(Exception):
    """Base class for all feedsync errors."""


class FetchErrorKind(str, Enum):
    """Why a network request failed. Each kind implies a different remedy."""

    NAME_RESOLUTION = "name_resolution"
    CERTIFICATE = "certificate"
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    HTTP_STATUS = "http_status"
    NETWORK = "network"


_USER_MESSAGES = {
    FetchErrorKind.NAME_RESOLUTION: "The site does not exist or its address cannot be resolved. Check the URL.",
    FetchErrorKind.CERTIFICATE: "The site's SSL certificate is invalid.",
    FetchErrorKind.CONNECTION_REFUSED: "The server refused the connection. The site may be down.",
    FetchErrorKind.TIMEOUT: "The server took too long to respond. Try again later.",
    FetchErrorKind.FORBIDDEN: "Access denied (403). The site may block external feed readers.",
    FetchErrorKind.NOT_FOUND: "Feed not found (404). Check the URL.",
    FetchErrorKind.HTTP_STATUS: "The server returned an error status.",
    FetchErrorKind.NETWORK: "Network error while contacting the site.",
}


class FetchError(FeedSyncError):
    """A network or HTTP failure reaching a feed or page."""

    def __init__(
        self,
        url: str,
        kind: FetchErrorKind,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.url = url
        self.kind = kind
        self.status_code = status_code
        super().__init__(message or f"{self.user_message} ({url})")

    @property
    def user_message(self) -> str:
        """Short actionable message for display."""
        if self.kind == FetchErrorKind.HTTP_STATUS and self.status_code:
            return f"The server returned HTTP {self.status_code}."
        return _USER_MESSAGES[self.kind]


class ParseError(FeedSyncError):
    """The document is malformed or is neither RSS nor Atom."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message} ({url})")


class SyncError(FeedSyncError):
    """A failure during one feed's sync pipeline."""

    def __init__(self, feed_id: str, message: str):
        self.feed_id = feed_id
        super().__init__(message)


class StorageErrorCode(str, Enum):
    LOAD_FAILED = "load_failed"
    SAVE_FAILED = "save_failed"
    INVALID_DATA = "invalid_data"
    WRITE_FAILED = "write_failed"
    REMOVE_FAILED = "remove_failed"


class StorageError(FeedSyncError):
    """A folder, file or settings persistence failure."""

    def __init__(
        self,
        path: str,
        message: str,
        code: StorageErrorCode = StorageErrorCode.WRITE_FAILED,
    ):
        self.path = path
        self.code = code
        super().__init__(f"{message}: {path}")


class OpmlError(FeedSyncError):
    """The OPML document itself cannot be parsed."""


class DuplicateFeedError(FeedSyncError):
    """A feed with the same URL (case-insensitive) already exists."""


class FeedNotFoundError(FeedSyncError):
    """No feed with the requested id."""

    def __init__(self, feed_id: str):
        self.feed_id = feed_id
        super().__init__(f"Feed not found: {feed_id}")


class MissingCredentialsError(FeedSyncError):
    """A feature toggle needs LLM credentials that are not configured."""


def _exception_chain(error: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_exception(error: BaseException) -> FetchErrorKind:
    """Map a transport exception to a FetchErrorKind.

    Walks the cause chain so that OS-level errors wrapped by httpx/httpcore
    (DNS failure, refused connection, bad certificate) are recognised by type.

    Args:
        error: Exception raised while performing a request

    Returns:
        The most specific FetchErrorKind found
    """
    if isinstance(error, FetchError):
        return error.kind

    if isinstance(error, httpx.HTTPStatusError):
        return kind_for_status(error.response.status_code)

    for exc in _exception_chain(error):
        if isinstance(exc, ssl.SSLCertVerificationError):
            return FetchErrorKind.CERTIFICATE
        if isinstance(exc, socket.gaierror):
            return FetchErrorKind.NAME_RESOLUTION
        if isinstance(exc, ConnectionRefusedError):
            return FetchErrorKind.CONNECTION_REFUSED
        if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
            return FetchErrorKind.TIMEOUT

    return FetchErrorKind.NETWORK


def kind_for_status(status_code: int) -> FetchErrorKind:
    """Map a non-success HTTP status to a FetchErrorKind."""
    if status_code == 403:
        return FetchErrorKind.FORBIDDEN
    if status_code == 404:
        return FetchErrorKind.NOT_FOUND
    return FetchErrorKind.HTTP_STATUS


def describe_error(error: BaseException) -> str:
    """Short user-facing description of any error, never a stack trace."""
    if isinstance(error, FetchError):
        return error.user_message
    if isinstance(error, SyncError) and error.__cause__ is not None:
        return describe_error(error.__cause__)
    if isinstance(error, FeedSyncError):
        return str(error)
    if isinstance(error, httpx.HTTPError):
        return _USER_MESSAGES[classify_exception(error)]
    return f"Unexpected error: {error}"
