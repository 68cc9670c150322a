"""
Main client implementation
Handles client connection with server, line sending and receiving, and graceful shutdown
"""

import asyncio
import sys
import logging
import argparse
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_PORT = 2710
EXIT_COMMAND = "exit"


def print_message(message: str) -> None:
    print(f"\r{message}")
    print("> ", end="", flush=True)


class Client():
    """
    Async client for the broadcast chat server

    Features:
    - Raw line sending, the server prefixes our name
    - Inbound lines handed to an on_message callback
    - "exit" ends the session
    """
    def __init__(self, host: str, port: int, on_message: Optional[Callable[[str], None]] = None) -> None:
        """
        Initialize client
        Args:
            host: ip of the server to connect to
            port: port of the server to connect to
            on_message: called with every line received from the server
        """
        self.host = host
        self.port = port
        self.on_message = on_message or print_message
        self.writer: Optional[asyncio.StreamWriter] = None
        self.reader: Optional[asyncio.StreamReader] = None

    async def connect_to_server(self, timeout: float = 10.0) -> Tuple[Optional[asyncio.StreamReader], Optional[asyncio.StreamWriter]]:
        """Handle the connection to the chat server"""
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=timeout
            )
            logger.info(f"Connected to {self.host}:{self.port}")
            return reader, writer
        except ConnectionRefusedError:
            logger.error(f"ERROR: Server at {self.host}:{self.port} refused connection")
            return None, None
        except asyncio.TimeoutError:
            logger.error(f"ERROR: Connection to {self.host}:{self.port} timed out")
            return None, None
        except OSError as e:
            logger.error(f"ERROR: OS Error: {e}")
            return None, None

    async def send_line(self, text: str) -> bool:
        """Send one raw line to the server"""
        try:
            self.writer.write(text.encode() + b'\n')
            await self.writer.drain()
            return True
        except (ConnectionResetError, BrokenPipeError, ConnectionAbortedError) as e:
            logger.error(f"Connection lost: {e}")
        except OSError as e:
            logger.error(f"OS Error: {e}")
        return False

    async def receive_message(self):
        """Handle the receiving of lines from the server"""
        try:
            while True:
                data = await self.reader.readline()
                if not data:
                    logger.info("Server disconnected")
                    break
                self.on_message(data.decode(errors="replace").rstrip("\r\n"))
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError) as e:
            logger.error(f"Connection ERROR: {e}")
        except asyncio.CancelledError:
            logger.info("Stopping receiver...")
            raise

    async def send_user_input(self):
        """Read user input and send it to the server"""
        loop = asyncio.get_running_loop()
        try:
            while True:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    # stdin closed
                    break
                message = line.rstrip("\r\n")
                status = await self.send_line(message)
                if not status or message == EXIT_COMMAND:
                    logger.info("Client wants to close down...")
                    break
        except asyncio.CancelledError:
            logger.info("Stopping sender...")
            raise

    async def run(self) -> bool:
        """Main client loop"""
        self.reader, self.writer = await self.connect_to_server()

        if self.reader is None and self.writer is None:
            logger.error("Failed to connect to the server")
            return False

        receiver_task = asyncio.create_task(self.receive_message())
        sender_task = asyncio.create_task(self.send_user_input())

        try:
            done, pending = await asyncio.wait(
                {receiver_task, sender_task},
                return_when=asyncio.FIRST_COMPLETED
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        finally:
            await self.close()
        return True

    async def close(self):
        if self.writer and not self.writer.is_closing():
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError) as e:
                logger.debug(f"Error while closing: {e}")
        logger.info("Disconnected from server")


def main():
    """Entry point for client"""
    parser = argparse.ArgumentParser(description="Chat Client")
    parser.add_argument('--host', default='127.0.0.1', help='Server host')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help='Server port')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()
    # setup logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    client = Client(host=args.host, port=args.port)
    try:
        connected = asyncio.run(client.run())
    except KeyboardInterrupt:
        logger.info("Client Stopped by user")
        return
    if not connected:
        sys.exit(1)


if __name__ == "__main__":
    main()
