"""
Basic unit tests for the chat client.
"""
import asyncio
import socket
from unittest.mock import AsyncMock, Mock

import pytest

from chat_client.client import Client


def free_port():
    with socket.socket() as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


@pytest.mark.fast
@pytest.mark.asyncio
async def test_connect_failure_is_reported():
    client = Client('127.0.0.1', free_port())
    reader, writer = await client.connect_to_server()
    assert reader is None and writer is None
    assert await client.run() is False


@pytest.mark.fast
@pytest.mark.asyncio
async def test_send_line_appends_newline():
    client = Client('127.0.0.1', 2710)
    client.writer = Mock()
    client.writer.drain = AsyncMock()
    assert await client.send_line("hello") is True
    client.writer.write.assert_called_once_with(b'hello\n')


@pytest.mark.fast
@pytest.mark.asyncio
async def test_send_line_reports_broken_connection():
    client = Client('127.0.0.1', 2710)
    client.writer = Mock()
    client.writer.drain = AsyncMock(side_effect=ConnectionResetError("reset"))
    assert await client.send_line("hello") is False


@pytest.mark.fast
@pytest.mark.asyncio
async def test_receive_message_dispatches_lines():
    received = []
    client = Client('127.0.0.1', 2710, on_message=received.append)
    client.reader = asyncio.StreamReader()
    client.reader.feed_data(b"a:1 connected.\na:1 : hi\r\na:1 : \n")
    client.reader.feed_eof()
    await client.receive_message()
    assert received == ["a:1 connected.", "a:1 : hi", "a:1 : "]


@pytest.mark.slow
@pytest.mark.asyncio
async def test_client_talks_to_server(running_server):
    host, port = running_server.address
    received = []
    client = Client(host, port, on_message=received.append)
    client.reader, client.writer = await client.connect_to_server()
    assert client.reader is not None, "client failed to connect"
    receiver_task = asyncio.create_task(client.receive_message())
    try:
        assert await client.send_line("hello")
        for _ in range(50):
            if len(received) >= 2:
                break
            await asyncio.sleep(0.1)
        name = received[0][:-len(" connected.")]
        assert received == [f"{name} connected.", f"{name} : hello"]
    finally:
        receiver_task.cancel()
        try:
            await receiver_task
        except asyncio.CancelledError:
            pass
        await client.close()
