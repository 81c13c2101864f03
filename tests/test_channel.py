"""Unit tests for MessageChannel."""

import json

import httpx
import pytest

from common.exceptions import MessageNotSentError
from common.types import Message
from webhook.channel import MessageChannel

ENDPOINT = 'https://hooks.test/api/webhooks/1/token'


def make_channel(handler):
    """Create a channel over a mock transport that records its sleeps."""
    sleeps = []
    channel = MessageChannel(
        ENDPOINT,
        session=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )
    return channel, sleeps


def test_send_assigns_id():
    """Test successful send parses the id from the response."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={'id': '1180000000000000001', 'content': 'hi'})

    channel, sleeps = make_channel(handler)
    message = channel.send_text('hi')

    assert message.id == 1180000000000000001
    assert sleeps == []
    assert len(requests) == 1
    request = requests[0]
    assert request.method == 'POST'
    assert str(request.url) == f'{ENDPOINT}?wait=true'
    assert request.headers['Content-Type'].startswith('multipart/form-data; boundary=')
    assert request.headers['Content-Length'] == str(len(request.content))


@pytest.mark.parametrize("failures", [0, 1, 3])
def test_send_retries_transport_failures(failures):
    """Test that send succeeds after N transport failures with a sleep before each retry."""
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        if attempts <= failures:
            raise httpx.ConnectError("Connection refused")
        return httpx.Response(200, json={'id': '42'})

    channel, sleeps = make_channel(handler)
    message = channel.send_file('chunk_0.zip', b'payload')

    assert message.id == 42
    assert attempts == failures + 1
    assert sleeps == [60] * failures


def test_send_retries_error_status():
    """Test that a 5xx/4xx status counts as a transport failure."""
    statuses = iter([502, 429, 200])

    def handler(request):
        status = next(statuses)
        if status != 200:
            return httpx.Response(status, json={'message': 'nope'})
        return httpx.Response(200, json={'id': '7'})

    channel, sleeps = make_channel(handler)

    assert channel.send_text('x').id == 7
    assert sleeps == [60, 60]


def test_transport_retry_resends_same_body():
    bodies = []

    def handler(request):
        bodies.append((request.headers['Content-Type'], request.content))
        if len(bodies) == 1:
            raise httpx.ReadTimeout("timed out")
        return httpx.Response(200, json={'id': '9'})

    channel, _ = make_channel(handler)
    channel.send_text('same')

    assert bodies[0] == bodies[1]


@pytest.mark.parametrize("body", [
    b'not json',
    b'[]',
    b'{}',
    b'{"id": 5}',
    b'{"id": "abc"}',
    b'{"id": "0"}',
    b'{"id": "-3"}',
    b'{"id": "18446744073709551616"}',
])
def test_send_retries_whole_send_on_malformed_response(body):
    """Test that an unparseable acknowledgement repeats the send with a fresh boundary."""
    content_types = []

    def handler(request):
        content_types.append(request.headers['Content-Type'])
        if len(content_types) == 1:
            return httpx.Response(200, content=body)
        return httpx.Response(200, json={'id': '18446744073709551615'})

    channel, sleeps = make_channel(handler)
    message = channel.send_text('hello')

    assert message.id == 2 ** 64 - 1
    assert sleeps == [300]
    assert len(content_types) == 2
    assert content_types[0] != content_types[1]


def test_edit_without_id_fails_without_network():
    """Test that editing an unsent message is a contract violation."""
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={})

    channel, sleeps = make_channel(handler)

    with pytest.raises(MessageNotSentError):
        channel.edit(Message.text('draft'), 'new text')

    assert calls == 0
    assert sleeps == []


def test_edit_patches_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, content=b'ignored, not even json')

    channel, sleeps = make_channel(handler)
    message = Message(id=123, content='old')

    channel.edit(message, 'Backing up data...')

    assert message.content == 'Backing up data...'
    assert len(requests) == 1
    assert requests[0].method == 'PATCH'
    assert str(requests[0].url) == f'{ENDPOINT}/messages/123'
    assert requests[0].headers['Content-Type'] == 'application/json'
    assert json.loads(requests[0].content) == {'content': 'Backing up data...'}
    assert sleeps == []


def test_edit_retries_with_short_backoff():
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ConnectError("down")
        if attempts == 2:
            return httpx.Response(500)
        return httpx.Response(200, json={'id': '1'})

    channel, sleeps = make_channel(handler)
    channel.edit(Message(id=1), 'text')

    assert attempts == 3
    assert sleeps == [10, 10]


def test_send_through_fake_webhook(webhook_channel, fake_webhook):
    """Test a full round trip against the in-process webhook."""
    fake_webhook.fail_posts = 2
    fake_webhook.malformed_posts = 1

    message = webhook_channel.send(Message.file('chunk_0.zip', b'abc', content='first'))

    assert fake_webhook.post_attempts == 4
    assert webhook_channel.sleeps == [60, 60, 300]
    assert fake_webhook.messages[message.id]['files'][0]['data'] == b'abc'
    assert fake_webhook.messages[message.id]['wait'] is True

    webhook_channel.edit(message, 'edited')
    assert fake_webhook.messages[message.id]['content'] == 'edited'


def test_close_session():
    channel, _ = make_channel(lambda request: httpx.Response(200))
    channel.close()
    assert channel.session.is_closed
