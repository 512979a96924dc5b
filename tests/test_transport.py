"""Tests for deserializing HTTP requests and responses."""

from contextlib import contextmanager
from dataclasses import dataclass

import httpx
import pytest
from pydantic import ValidationError

import tson
from tson import HttpTransport, JsonSerializer
from tson.adapters import ResponseBodyStream


# ============================================================================
# Helpers
# ============================================================================


@dataclass
class Record:
    a: int


class CountingStream(httpx.SyncByteStream):
    """Response body that counts closes and can fail part way through."""

    def __init__(self, chunks, fail_at=None):
        self.chunks = chunks
        self.fail_at = fail_at
        self.close_calls = 0

    def __iter__(self):
        for index, chunk in enumerate(self.chunks):
            if index == self.fail_at:
                raise httpx.ReadError("connection reset")
            yield chunk

    def close(self):
        self.close_calls += 1


class MockServer:
    """Serves one canned response per request and remembers what it served."""

    def __init__(self, chunks, status_code=200, fail_at=None):
        self.chunks = chunks
        self.status_code = status_code
        self.fail_at = fail_at
        self.requests = []
        self.responses = []
        self.streams = []

    def __call__(self, request):
        stream = CountingStream(self.chunks, self.fail_at)
        response = httpx.Response(self.status_code, stream=stream)
        self.requests.append(request)
        self.responses.append(response)
        self.streams.append(stream)
        return response

    def serializer(self):
        client = httpx.Client(transport=httpx.MockTransport(self))
        return JsonSerializer(transport=HttpTransport(client))

    def assert_released_once(self):
        assert len(self.responses) == 1
        assert self.responses[0].is_closed
        assert self.streams[0].close_calls == 1


class RecordingTransport:
    """Transport that hands out a prepared response and logs its release."""

    def __init__(self, response, events):
        self.response = response
        self.events = events

    @contextmanager
    def open_response(self, request):
        try:
            yield self.response
        finally:
            self.events.append("response")
            self.response.close()


@pytest.fixture
def body_events(monkeypatch):
    events = []
    original_close = ResponseBodyStream.close

    def recording_close(self):
        if not self.closed:
            events.append("body")
        original_close(self)

    monkeypatch.setattr(ResponseBodyStream, "close", recording_close)
    return events


# ============================================================================
# Tests
# ============================================================================


class TestDeserializeRequest:
    def test_reads_typed_body(self):
        server = MockServer([b'{"a"', b":1}"])
        result = server.serializer().deserialize_request(
            httpx.Request("GET", "https://api.example.test/records/1"), Record
        )
        assert result == Record(a=1)
        server.assert_released_once()

    def test_url_string_is_a_get(self):
        server = MockServer([b'{"a":2}'])
        result = server.serializer().deserialize_request("https://api.example.test/records/2", Record)
        assert result == Record(a=2)
        assert server.requests[0].method == "GET"
        assert str(server.requests[0].url) == "https://api.example.test/records/2"

    def test_released_when_decoding_fails(self):
        server = MockServer([b'{"a":"not a number"}'])
        with pytest.raises(ValidationError):
            server.serializer().deserialize_request(
                httpx.Request("GET", "https://api.example.test/records/3"), Record
            )
        server.assert_released_once()

    def test_released_when_body_read_fails(self):
        server = MockServer([b'{"a"', b":1}"], fail_at=1)
        with pytest.raises(httpx.ReadError):
            server.serializer().deserialize_request(
                httpx.Request("GET", "https://api.example.test/records/4"), Record
            )
        server.assert_released_once()

    def test_error_status_propagates(self):
        server = MockServer([b'{"error":"missing"}'], status_code=404)
        with pytest.raises(httpx.HTTPStatusError):
            server.serializer().deserialize_request(
                httpx.Request("GET", "https://api.example.test/records/5"), Record
            )
        server.assert_released_once()

    def test_empty_body_is_zero_value(self):
        server = MockServer([])
        serializer = server.serializer()
        assert serializer.deserialize_request("https://api.example.test/empty", Record) is None
        assert serializer.deserialize_request("https://api.example.test/empty", int) == 0

    def test_generic_deserialize_executes_requests(self):
        server = MockServer([b"[1,2,3]"])
        serializer = server.serializer()
        request = httpx.Request("GET", "https://api.example.test/numbers")
        assert serializer.deserialize(request, list[int]) == [1, 2, 3]
        server.assert_released_once()

    def test_release_order(self, body_events):
        events = body_events
        response = httpx.Response(200, stream=CountingStream([b'{"a":1}']))
        serializer = JsonSerializer(transport=RecordingTransport(response, events))
        assert serializer.deserialize_request(httpx.Request("GET", "https://x.test/"), Record) == Record(a=1)
        assert events == ["body", "response"]

    def test_release_order_on_decode_error(self, body_events):
        events = body_events
        stream = CountingStream([b"\xff"])
        response = httpx.Response(200, stream=stream)
        serializer = JsonSerializer(transport=RecordingTransport(response, events))
        with pytest.raises(UnicodeDecodeError):
            serializer.deserialize_request(httpx.Request("GET", "https://x.test/"), Record)
        assert events == ["body", "response"]
        assert stream.close_calls == 1


class TestDeserializeResponse:
    def test_reads_and_releases(self):
        stream = CountingStream([b'{"a":', b"7}"])
        response = httpx.Response(200, stream=stream)
        assert JsonSerializer().deserialize_response(response, Record) == Record(a=7)
        assert response.is_closed
        assert stream.close_calls == 1

    def test_released_on_validation_error(self):
        stream = CountingStream([b'{"a":"x"}'])
        response = httpx.Response(200, stream=stream)
        with pytest.raises(ValidationError):
            JsonSerializer().deserialize_response(response, Record)
        assert response.is_closed
        assert stream.close_calls == 1

    def test_generic_deserialize_accepts_responses(self):
        response = httpx.Response(200, content=b'{"a":9}')
        assert JsonSerializer().deserialize(response, Record) == Record(a=9)


class TestHttpTransport:
    def test_owned_client_is_closed(self):
        transport = HttpTransport()
        client = transport.client
        assert transport.client is client
        transport.close()
        assert client.is_closed

    def test_injected_client_is_left_open(self):
        client = httpx.Client(transport=httpx.MockTransport(MockServer([b"{}"])))
        with HttpTransport(client) as transport:
            assert transport.client is client
        assert not client.is_closed
        client.close()

    def test_timeout_from_config(self):
        transport = HttpTransport(config=tson.JsonConfig(timeout=2.5))
        try:
            assert transport.client.timeout.read == 2.5
        finally:
            transport.close()


class TestModuleApi:
    @pytest.fixture(autouse=True)
    def reset_default(self):
        yield
        tson.set_default_serializer(None)

    def test_module_level_request(self):
        server = MockServer([b'{"a":1}'])
        tson.set_default_serializer(server.serializer())
        assert tson.deserialize_request("https://api.example.test/records/1", Record) == Record(a=1)
        server.assert_released_once()

    def test_module_level_response(self):
        response = httpx.Response(200, content=b'{"a":3}')
        assert tson.deserialize_response(response, Record) == Record(a=3)
