# tests/conftest.py
import json

import pytest
import requests
from multiformats import CID, multihash


class FakeRaw:
    """Stands in for the urllib3 response under a streamed requests.Response."""

    def __init__(self):
        self.shutdown_calls = 0

    def shutdown(self):
        self.shutdown_calls += 1


class FakeResponse:
    """Minimal requests.Response replacement."""

    def __init__(self, body=b"", status=200, chunks=None):
        if not isinstance(body, bytes):
            body = json.dumps(body).encode("utf-8")
        self.content = body
        self.status_code = status
        self.chunks = list(chunks or [])
        self.raw = FakeRaw()
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)

    def json(self):
        return json.loads(self.content)

    def iter_content(self, chunk_size=None):
        for chunk in self.chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            if callable(chunk):
                chunk = chunk()
            yield chunk

    def close(self):
        self.closed = True


class FakeHttp:
    """Records calls to requests.get/post and replays queued responses."""

    def __init__(self):
        self.calls = []
        self.queued = []

    def queue(self, *items):
        self.queued.extend(items)

    def get(self, url, params=None, timeout=None, stream=False):
        self.calls.append({"method": "GET", "url": url, "params": params, "timeout": timeout, "stream": stream})
        return self._next()

    def post(self, url, params=None, files=None, timeout=None):
        self.calls.append({"method": "POST", "url": url, "params": params, "files": files, "timeout": timeout})
        return self._next()

    def _next(self):
        item = self.queued.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def last(self):
        return self.calls[-1]


@pytest.fixture
def fake_http(monkeypatch):
    """Replace requests.get/post, and Session.get, with a FakeHttp instance."""
    http = FakeHttp()
    monkeypatch.setattr(requests, "get", http.get)
    monkeypatch.setattr(requests, "post", http.post)
    monkeypatch.setattr(requests.Session, "get", lambda session, url, **kwargs: http.get(url, **kwargs))
    return http


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def cid():
    return CID("base32", 1, "dag-json", multihash.digest(b"hello", "sha2-256"))


@pytest.fixture
def other_cid():
    return CID("base58btc", 0, "dag-pb", multihash.digest(b"world", "sha2-256"))
