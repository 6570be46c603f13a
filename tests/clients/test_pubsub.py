# tests/clients/test_pubsub.py
import json
import threading

import pytest
import requests
from urllib3.exceptions import ReadTimeoutError

from radicle_ipfs.clients.errors import DaemonError, DaemonTimeoutError, InvalidResponseError, NoDaemonError
from radicle_ipfs.clients.pubsub import CancelToken, PubsubClient, decode_message
from radicle_ipfs.config import IpfsConfig
from radicle_ipfs.types import PubsubMessage


def wire(data: str, seqno: str = "AAE=") -> bytes:
    return json.dumps({"topicIDs": ["t"], "data": data, "from": "ZnJvbQ==", "seqno": seqno}).encode()


HELLO = wire("aGVsbG8=")          # b"hello"
WORLD = wire("d29ybGQ=", "AAI=")  # b"world"
BAD = wire("not-base64!")


@pytest.fixture
def client():
    return PubsubClient(IpfsConfig(api_url="http://daemon:9301"))


class Recorder:
    def __init__(self):
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)

    @property
    def data(self):
        return [m.data for m in self.messages]


# --- decode_message ---------------------------------------------------------

def test_decode_message():
    msg = decode_message(json.loads(HELLO))
    assert msg == PubsubMessage(topics=["t"], data=b"hello", from_=b"from", seqno=b"\x00\x01")


def test_decode_message_bad_base64():
    with pytest.raises(InvalidResponseError) as exc:
        decode_message(json.loads(BAD))
    assert exc.value.path == "pubsub/sub"


# --- subscribe --------------------------------------------------------------

def test_subscribe_request(client, fake_http, make_response):
    fake_http.queue(make_response(chunks=[]))
    client.subscribe("my-topic", Recorder())
    call = fake_http.last
    assert call["url"] == "http://daemon:9301/api/v0/pubsub/sub"
    assert call["params"] == {"arg": "my-topic", "encoding": "json", "stream-channels": "true"}
    assert call["stream"] is True


def test_subscribe_delivers_concatenated_messages_in_order(client, fake_http, make_response):
    resp = make_response(chunks=[HELLO + WORLD])
    fake_http.queue(resp)
    handler = Recorder()
    client.subscribe("t", handler)
    assert handler.data == [b"hello", b"world"]
    assert [m.seqno for m in handler.messages] == [b"\x00\x01", b"\x00\x02"]
    assert resp.closed


def test_subscribe_message_split_across_chunks(client, fake_http, make_response):
    stream = HELLO + b"\n" + WORLD
    fake_http.queue(make_response(chunks=[stream[:10], stream[10:50], stream[50:]]))
    handler = Recorder()
    client.subscribe("t", handler)
    assert handler.data == [b"hello", b"world"]


def test_subscribe_aborts_on_undecodable_message(client, fake_http, make_response):
    resp = make_response(chunks=[HELLO, BAD + WORLD])
    fake_http.queue(resp)
    handler = Recorder()
    with pytest.raises(InvalidResponseError) as exc:
        client.subscribe("t", handler)
    assert exc.value.path == "pubsub/sub"
    assert handler.data == [b"hello"]
    assert resp.closed


def test_subscribe_aborts_on_malformed_json(client, fake_http, make_response):
    resp = make_response(chunks=[HELLO + b"}{"])
    fake_http.queue(resp)
    handler = Recorder()
    with pytest.raises(InvalidResponseError):
        client.subscribe("t", handler)
    assert handler.data == [b"hello"]
    assert resp.closed


def test_subscribe_stream_ends_inside_message(client, fake_http, make_response):
    fake_http.queue(make_response(chunks=[HELLO[:20]]))
    with pytest.raises(InvalidResponseError):
        client.subscribe("t", Recorder())


def test_subscribe_handler_exception_propagates(client, fake_http, make_response):
    resp = make_response(chunks=[HELLO])
    fake_http.queue(resp)

    def handler(message):
        raise KeyError("handler failed")

    with pytest.raises(KeyError):
        client.subscribe("t", handler)
    assert resp.closed


def test_subscribe_transport_errors(client, fake_http, make_response):
    timeout = requests.ConnectionError(ReadTimeoutError(None, "/api/v0/pubsub/sub", "Read timed out."))
    resp = make_response(chunks=[HELLO, timeout])
    fake_http.queue(resp)
    handler = Recorder()
    with pytest.raises(DaemonTimeoutError):
        client.subscribe("t", handler)
    assert handler.data == [b"hello"]
    assert resp.closed

    fake_http.queue(requests.ConnectionError("refused"))
    with pytest.raises(NoDaemonError):
        client.subscribe("t", handler)

    fake_http.queue(make_response({"Message": "experimental pubsub feature not enabled"}, status=500))
    with pytest.raises(DaemonError):
        client.subscribe("t", handler)


# --- cancellation -----------------------------------------------------------

def test_cancelled_token_skips_request(client, fake_http):
    token = CancelToken()
    token.cancel()
    client.subscribe("t", Recorder(), token)
    assert fake_http.calls == []


def test_cancel_from_handler_stops_before_next_message(client, fake_http, make_response):
    resp = make_response(chunks=[HELLO + WORLD, HELLO])
    fake_http.queue(resp)
    token = CancelToken()
    received = []

    def handler(message):
        received.append(message.data)
        token.cancel()

    client.subscribe("t", handler, token)
    assert received == [b"hello"]
    assert resp.raw.shutdown_calls == 1
    assert resp.closed


def test_cancel_during_read_ends_quietly(client, fake_http, make_response):
    token = CancelToken()

    def interrupted_read():
        token.cancel()
        raise requests.exceptions.ChunkedEncodingError("Response ended prematurely")

    resp = make_response(chunks=[HELLO, interrupted_read, WORLD])
    fake_http.queue(resp)
    handler = Recorder()
    client.subscribe("t", handler, token)
    assert handler.data == [b"hello"]
    assert resp.closed


class BlockingResponse:
    """Streams one chunk, then blocks like a socket read until shut down."""

    def __init__(self, first):
        self.first = first
        self.closed = False
        self.released = threading.Event()
        self.raw = self

    def raise_for_status(self):
        pass

    def shutdown(self):
        self.released.set()

    def iter_content(self, chunk_size=None):
        yield self.first
        self.released.wait()
        raise requests.exceptions.ChunkedEncodingError("Connection broken")

    def close(self):
        self.closed = True


def test_cancel_from_other_thread_unblocks_read(client, fake_http):
    resp = BlockingResponse(HELLO)
    fake_http.queue(resp)
    token = CancelToken()
    delivered = threading.Event()
    outcome = {}

    def run():
        try:
            client.subscribe("t", lambda m: delivered.set(), token)
            outcome["result"] = "returned"
        except Exception as e:  # pragma: no cover - reported below
            outcome["result"] = e

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    assert delivered.wait(5)
    token.cancel()
    thread.join(5)
    assert not thread.is_alive()
    assert outcome["result"] == "returned"
    assert resp.closed


def test_cancel_token_hooks():
    token = CancelToken()
    calls = []
    hook = lambda: calls.append("a")
    token.add_hook(hook)
    token.add_hook(lambda: calls.append("b"))
    token.remove_hook(hook)
    assert not token.cancelled
    token.cancel()
    token.cancel()
    assert token.cancelled
    assert token.wait(0)
    assert calls == ["b"]
    token.add_hook(lambda: calls.append("late"))
    assert calls == ["b", "late"]


# --- publish ----------------------------------------------------------------

def test_publish(client, fake_http, make_response):
    fake_http.queue(make_response(b""))
    assert client.publish("my-topic", b"\x00payload") is None
    call = fake_http.last
    assert call["method"] == "POST"
    assert call["url"] == "http://daemon:9301/api/v0/pubsub/pub"
    assert call["params"] == {"arg": "my-topic"}
    assert call["files"] == {"data": b"\x00payload"}


def test_publish_failure(client, fake_http, make_response):
    fake_http.queue(make_response({"Message": "topic is empty"}, status=500))
    with pytest.raises(DaemonError):
        client.publish("", b"x")
