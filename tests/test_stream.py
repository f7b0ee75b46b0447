import asyncio
import logging

import pytest

from habitlog.realtime import MessageFeed
from habitlog.routes.chat import serve_stream
from habitlog.stores.messaging import MessagingCoordinator


class BrokenSocket:
    """Accepts, then fails every write; the client never sends anything."""

    def __init__(self):
        self.accepted = asyncio.Event()
        self.writes = 0

    async def accept(self):
        self.accepted.set()

    async def send_json(self, data):
        self.writes += 1
        raise RuntimeError("socket closed")

    async def receive_text(self):
        await asyncio.Event().wait()


@pytest.fixture
def feed():
    return MessageFeed()


async def _conversation(a, b):
    request = await a.send_chat_request(b.user_id)
    return await b.accept_chat_request(request.id, a.user_id)


async def test_stream_ends_when_socket_write_fails(database, alice, bob, feed, caplog):
    a, b = MessagingCoordinator(alice, feed=feed), MessagingCoordinator(bob, feed=feed)
    conversation = await _conversation(a, b)
    socket = BrokenSocket()

    stream = asyncio.create_task(serve_stream(socket, b, conversation.id))
    await asyncio.wait_for(socket.accepted.wait(), timeout=2)
    assert feed.subscriber_count(conversation.id) == 1

    with caplog.at_level(logging.WARNING, logger="habitlog.routes.chat"):
        await a.send_message(conversation.id, "hello")
        await asyncio.wait_for(stream, timeout=2)

    assert socket.writes == 1
    assert feed.subscriber_count(conversation.id) == 0
    assert "socket closed" in caplog.text


async def test_cancelled_stream_stops_its_subscription(database, alice, bob, feed):
    a, b = MessagingCoordinator(alice, feed=feed), MessagingCoordinator(bob, feed=feed)
    conversation = await _conversation(a, b)
    socket = BrokenSocket()

    stream = asyncio.create_task(serve_stream(socket, b, conversation.id))
    await asyncio.wait_for(socket.accepted.wait(), timeout=2)
    stream.cancel()
    with pytest.raises(asyncio.CancelledError):
        await stream
    assert feed.subscriber_count(conversation.id) == 0
    assert socket.writes == 0
