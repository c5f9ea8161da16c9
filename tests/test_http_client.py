"""Tests for the shared async HTTP helpers."""

import asyncio

import aiohttp
import pytest

from common.errors import HTTPStatusError, NetworkError, ParseError, RequestTimeoutError
from common.http_client import decode_json, get_json
from registry_fixtures import FakeSession


class TestDecodeJson:
    """Status and body validation."""

    def test_ok(self):
        assert decode_json("a", "https://r/a", 200, '{"x": 1}') == {"x": 1}

    def test_non_200(self):
        with pytest.raises(HTTPStatusError) as excinfo:
            decode_json("a", "https://r/a", 404, "")
        assert excinfo.value.status_code == 404
        assert excinfo.value.name == "a"

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            decode_json("a", "https://r/a", 200, "<html>")


class TestGetJson:
    """Retry behaviour of get_json."""

    def test_success_first_try(self):
        session = FakeSession([(200, '{"ok": true}')])
        result = asyncio.run(get_json(session, "https://r/a", name="a", retry_delay=0))
        assert result == {"ok": True}
        assert len(session.calls) == 1

    def test_retries_transport_errors(self):
        session = FakeSession([aiohttp.ClientConnectionError("reset"), (200, "[]")])
        result = asyncio.run(get_json(session, "https://r/a", name="a", retry_delay=0))
        assert result == []
        assert len(session.calls) == 2

    def test_gives_up_with_network_error(self):
        session = FakeSession([aiohttp.ClientConnectionError("down")] * 3)
        with pytest.raises(NetworkError) as excinfo:
            asyncio.run(get_json(session, "https://r/a", name="a", attempts=3, retry_delay=0))
        assert not isinstance(excinfo.value, RequestTimeoutError)
        assert len(session.calls) == 3

    def test_gives_up_with_timeout(self):
        session = FakeSession([asyncio.TimeoutError(), asyncio.TimeoutError()])
        with pytest.raises(RequestTimeoutError):
            asyncio.run(get_json(session, "https://r/a", name="a", attempts=2, retry_delay=0))

    def test_http_status_not_retried(self):
        session = FakeSession([(500, "boom"), (200, "{}")])
        with pytest.raises(HTTPStatusError):
            asyncio.run(get_json(session, "https://r/a", name="a", retry_delay=0))
        assert len(session.calls) == 1
