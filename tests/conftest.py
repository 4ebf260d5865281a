import os
import tempfile

# Keep log files out of the working tree while tests import the app
os.environ.setdefault("MANGAREADER_LOG_DIR", tempfile.mkdtemp(prefix="mangareader-logs-"))

import pytest
import requests

from sources import MangaDexClient, RetryPolicy


class FakeResponse:
    def __init__(self, status_code=200, payload=None, body_error=False):
        self.status_code = status_code
        self._payload = payload
        self._body_error = body_error

    def json(self):
        if self._body_error:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """Stands in for requests.Session; `handler(url, params)` decides the reply."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params or {}, "headers": headers, "timeout": timeout})
        result = self.handler(url, params or {})
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        pass


class SleepRecorder:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


def chapter_entry(chapter_id, chapter="1", languages=("en",), pages=10, title=None):
    attrs = {"chapter": chapter, "translatedLanguage": list(languages), "title": title}
    if pages is not None:
        attrs["pages"] = pages
    return {"id": chapter_id, "type": "chapter", "attributes": attrs}


def feed_handler(total):
    """Serve `total` numbered chapters, honouring limit/offset."""
    def handler(url, params):
        offset = int(params.get("offset", 0))
        limit = int(params.get("limit", 100))
        end = min(offset + limit, total)
        data = [chapter_entry(f"ch-{i}", chapter=str(i + 1)) for i in range(offset, end)]
        return FakeResponse(200, {"result": "ok", "data": data, "total": total})
    return handler


def connection_error():
    return requests.ConnectionError("connection refused")


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_client(sleeper):
    def _make(handler):
        session = FakeSession(handler)
        client = MangaDexClient(
            session=session,
            base_url="https://api.test",
            retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleeper),
        )
        return client, session
    return _make
