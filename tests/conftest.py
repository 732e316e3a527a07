"""Shared fixtures: an in-process transport that records requests and replies from a script"""

from __future__ import annotations

import io
from dataclasses import dataclass
from http import HTTPStatus
from typing import Dict, List, Optional, Union

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from boomerang.infrastructure.breaker import reset_commands


@dataclass
class SentRequest:
    method: str
    url: str
    headers: Dict[str, str]
    body: bytes
    timeout: Optional[float]


ScriptItem = Union[int, BaseException, requests.Response]


def make_response(status_code: int, content: bytes = b"", url: str = "http://example.test/") -> requests.Response:
    r = requests.Response()
    r.status_code = status_code
    try:
        r.reason = HTTPStatus(status_code).phrase
    except ValueError:
        r.reason = ""
    r.url = url
    r.encoding = "utf-8"
    r.headers = CaseInsensitiveDict({"Content-Type": "text/plain"})
    r.raw = io.BytesIO(content)
    return r


class ScriptedAdapter(BaseAdapter):
    """Replies with the scripted statuses/errors in order, repeating the last one"""

    def __init__(self, *script: ScriptItem, content: bytes = b"ok"):
        super().__init__()
        self.script: List[ScriptItem] = list(script) or [200]
        self.content = content
        self.sent: List[SentRequest] = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        body = request.body
        if hasattr(body, "read"):
            data = body.read()
        elif isinstance(body, str):
            data = body.encode("utf-8")
        else:
            data = body or b""
        self.sent.append(SentRequest(request.method, request.url, dict(request.headers), data, timeout))

        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, requests.Response):
            return item
        response = make_response(item, self.content, url=request.url)
        response.request = request
        response.connection = self
        return response

    def close(self):
        pass

    @property
    def calls(self) -> int:
        return len(self.sent)


def make_session(adapter: ScriptedAdapter) -> requests.Session:
    session = requests.Session()
    session.trust_env = False
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


@pytest.fixture(autouse=True)
def _fresh_breakers():
    reset_commands()
    yield
    reset_commands()
