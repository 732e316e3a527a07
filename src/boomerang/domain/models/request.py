"""Request model with a replayable body"""

import io
import logging
import re
from typing import IO, Mapping, Optional, Union
from urllib.parse import urlparse

import requests
from requests.structures import CaseInsensitiveDict

from boomerang.domain.exceptions import BodyRewindError, RequestBuildError

logger = logging.getLogger(__name__)

# RFC 7230 token
_METHOD_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

BodyType = Union[bytes, str, IO[bytes]]


def _as_stream(body: BodyType) -> IO[bytes]:
    if isinstance(body, str):
        return io.BytesIO(body.encode("utf-8"))
    if isinstance(body, (bytes, bytearray)):
        return io.BytesIO(bytes(body))
    return body


def _is_seekable(body: IO[bytes]) -> bool:
    seekable = getattr(body, "seekable", None)
    if callable(seekable):
        try:
            return bool(seekable())
        except (OSError, ValueError):
            return False
    return callable(getattr(body, "seek", None))


def _body_length(body: IO[bytes]) -> Optional[int]:
    """Inspect a seekable body for its length

    Args:
        body: Seekable binary stream

    Returns:
        Number of bytes from offset zero, or None if it cannot be determined
    """
    if hasattr(body, "__len__"):
        return len(body)  # type: ignore[arg-type]
    if isinstance(body, io.BytesIO):
        return body.getbuffer().nbytes
    try:
        position = body.tell()
        end = body.seek(0, io.SEEK_END)
        body.seek(position)
    except (OSError, ValueError) as e:
        logger.debug(f"Could not determine body length: {e}")
        return None
    return end


class Request:
    """HTTP request whose body can be replayed between attempts.

    The transport request and the body handle are held side by side; the
    accessors below delegate to the transport request.
    """

    def __init__(
        self,
        method: str,
        url: str,
        body: Optional[BodyType] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        """Build a request

        Args:
            method: HTTP method
            url: Absolute http(s) URL
            body: Request payload; bytes, str, or a seekable binary stream
            headers: Request headers

        Raises:
            RequestBuildError: If the method, URL or body is invalid
        """
        if not isinstance(method, str) or not _METHOD_RE.fullmatch(method):
            raise RequestBuildError(f"Invalid HTTP method: {method!r}")

        parsed = urlparse(url) if isinstance(url, str) else None
        if parsed is None or parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise RequestBuildError(f"Invalid URL {url!r}: expected an absolute http(s) URL")

        stream: Optional[IO[bytes]] = None
        length: Optional[int] = None
        if body is not None:
            stream = _as_stream(body)
            if not _is_seekable(stream):
                raise RequestBuildError("Request body must be seekable so it can be replayed")
            length = _body_length(stream)
            if length == 0:
                # Empty stream bodies would be sent chunked
                stream = None

        self._body = stream
        self._content_length = length if stream is not None else None
        self._request = requests.Request(
            method=method.upper(),
            url=url,
            headers=CaseInsensitiveDict(headers or {}),
            data=stream,
        )
        if self._content_length is not None:
            self._request.headers["Content-Length"] = str(self._content_length)

        try:
            self._request.prepare()
        except requests.exceptions.RequestException as e:
            raise RequestBuildError(f"Invalid request {method} {url}: {e}") from e
        finally:
            if self._body is not None:
                self._body.seek(0)

    @property
    def method(self) -> str:
        return self._request.method

    @property
    def url(self) -> str:
        return self._request.url

    @property
    def headers(self) -> CaseInsensitiveDict:
        return self._request.headers

    @property
    def body(self) -> Optional[IO[bytes]]:
        return self._body

    @property
    def content_length(self) -> Optional[int]:
        """Explicit Content-Length of the body (None when there is no body)"""
        return self._content_length

    @property
    def transport_request(self) -> requests.Request:
        """The underlying requests.Request"""
        return self._request

    def rewind(self) -> None:
        """Seek the body back to its start

        Raises:
            BodyRewindError: If the body cannot be seeked
        """
        if self._body is None:
            return
        try:
            self._body.seek(0)
        except (OSError, ValueError) as e:
            raise BodyRewindError(self.method, self.url, e) from e

    def __repr__(self) -> str:
        return f"<Request [{self.method} {self.url}]>"
