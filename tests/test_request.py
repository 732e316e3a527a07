"""Tests for the replayable Request model"""

import io

import pytest

from boomerang.domain.exceptions import BodyRewindError, RequestBuildError
from boomerang.domain.models.request import Request


class _NonSeekable(io.RawIOBase):
    def readable(self):
        return True

    def seekable(self):
        return False


class _BrokenSeek(io.BytesIO):
    def __init__(self, data: bytes):
        super().__init__(data)
        self.broken = False

    def seek(self, *args, **kwargs):
        if self.broken:
            raise OSError("seek failed")
        return super().seek(*args, **kwargs)


class TestRequestConstruction:
    """Tests for request validation"""

    def test_valid_request(self):
        req = Request("get", "http://example.test/path?q=1", headers={"X-Test": "1"})
        assert req.method == "GET"
        assert req.url == "http://example.test/path?q=1"
        assert req.headers["x-test"] == "1"
        assert req.body is None
        assert req.content_length is None

    @pytest.mark.parametrize("method", ["", "GE T", "GET\r\n", None])
    def test_invalid_method(self, method):
        with pytest.raises(RequestBuildError, match="method"):
            Request(method, "http://example.test/")

    @pytest.mark.parametrize("url", ["example.test/path", "/relative", "ftp://example.test/file", "http://"])
    def test_invalid_url(self, url):
        with pytest.raises(RequestBuildError, match="URL"):
            Request("GET", url)

    def test_non_seekable_body(self):
        with pytest.raises(RequestBuildError, match="seekable"):
            Request("POST", "http://example.test/", body=_NonSeekable())

    def test_build_error_is_value_error(self):
        with pytest.raises(ValueError):
            Request("GET", "not a url")


class TestContentLength:
    """Tests for Content-Length inference"""

    def test_bytes_body(self):
        req = Request("POST", "http://example.test/", body=b'{"foo":"bar"}')
        assert req.content_length == 13
        assert req.headers["Content-Length"] == "13"

    def test_str_body_is_utf8(self):
        req = Request("POST", "http://example.test/", body="héllo")
        assert req.content_length == len("héllo".encode("utf-8"))
        assert req.body.read() == "héllo".encode("utf-8")

    def test_bytesio_body_counts_from_start(self):
        stream = io.BytesIO(b"0123456789")
        stream.seek(4)
        req = Request("PUT", "http://example.test/", body=stream)
        assert req.content_length == 10
        assert req.body.tell() == 0

    def test_file_body(self, tmp_path):
        path = tmp_path / "payload.bin"
        path.write_bytes(b"x" * 2048)
        with open(path, "rb") as f:
            req = Request("POST", "http://example.test/", body=f)
            assert req.content_length == 2048
            assert req.headers["Content-Length"] == "2048"

    def test_empty_body_is_absent(self):
        req = Request("POST", "http://example.test/", body=b"")
        assert req.body is None
        assert req.content_length is None
        assert "Content-Length" not in req.headers


class TestRewind:
    """Tests for body rewinding"""

    def test_rewind_restores_start(self):
        req = Request("POST", "http://example.test/", body=b"payload")
        assert req.body.read() == b"payload"
        req.rewind()
        assert req.body.read() == b"payload"

    def test_rewind_without_body(self):
        Request("GET", "http://example.test/").rewind()

    def test_rewind_failure(self):
        body = _BrokenSeek(b"payload")
        req = Request("POST", "http://example.test/", body=body)
        body.broken = True
        with pytest.raises(BodyRewindError, match="failed to seek body"):
            req.rewind()
