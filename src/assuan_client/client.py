"""
Assuan client for a local agent listening on a Unix domain socket.

The client owns one connection and runs strictly half-duplex: one request
at a time, and the caller reads every response line of an exchange (status
and comment lines up to the final OK or ERR) before sending the next
request. Nothing here enforces that ordering.

All shared state (the line queue, the error queue and the connection
state) is changed only from the transport callbacks on the event loop.
Callers that wait are woken directly by those callbacks; nothing polls.

Transport errors are queued and raised by the next send() or receive().
A receive() that is already waiting is woken and raises immediately. When
the agent closes the connection cleanly, lines it sent first are still
returned; receive() raises once they are used up.

There is no timeout, retry or reconnect. To bound a wait, race it and
close on expiry:

    try:
        response = await asyncio.wait_for(client.receive(), timeout=5)
    except TimeoutError:
        client.close()
        raise
"""

from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar, cast

from assuan_client.errors import (
    ClientClosedError,
    InvalidRequestError,
    TransportError,
)
from assuan_client.framing import LineReassembler
from assuan_client.logging import get_logger
from assuan_client.protocol import (
    LINE_TERMINATOR,
    MAX_LINE_LENGTH,
    Response,
    encode_command,
    encode_raw_data_lines,
)

if TYPE_CHECKING:
    from assuan_client.config import ClientConfig

logger = get_logger(__name__)

T = TypeVar("T")


class ConnectionState(Enum):
    """Client connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class PendingQueue(Generic[T]):
    """
    FIFO filled by transport callbacks and drained by a single consumer.

    wait() suspends on a one-shot future that put() or wake() resolves.
    Only one consumer may wait at a time, which matches the half-duplex
    protocol.
    """

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._waiter: asyncio.Future[None] | None = None

    def __len__(self) -> int:
        return len(self._items)

    def put(self, item: T) -> None:
        self._items.append(item)
        self.wake()

    def get_nowait(self) -> T | None:
        """Remove and return the oldest item, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def clear(self) -> None:
        self._items.clear()

    def wake(self) -> None:
        """Resolve the current waiter, if any, without adding an item."""
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    async def wait(self) -> None:
        """
        Suspend until an item is put or wake() is called.

        Returns at once if items are already queued.

        Raises:
            RuntimeError: If another consumer is already waiting.
        """
        if self._items:
            return
        if self._waiter is not None:
            raise RuntimeError("PendingQueue already has a waiting consumer")

        self._waiter = asyncio.get_running_loop().create_future()
        try:
            await self._waiter
        finally:
            self._waiter = None


class _AssuanProtocol(asyncio.Protocol):
    """Forwards transport events to the owning client."""

    def __init__(self, client: AssuanClient) -> None:
        self._client = client

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._client._on_connection_made(cast(asyncio.Transport, transport))

    def data_received(self, data: bytes) -> None:
        self._client._on_data_received(data)

    def connection_lost(self, exc: Exception | None) -> None:
        self._client._on_connection_lost(exc)

    def pause_writing(self) -> None:
        self._client._on_pause_writing()

    def resume_writing(self) -> None:
        self._client._on_resume_writing()


class AssuanClient:
    """
    Assuan protocol client over a Unix domain socket.

    Attributes:
        socket_path: Path to the agent's socket.
        max_line_length: Line limit used when splitting raw data.
        state: Current connection state.

    Example:
        >>> async with AssuanClient("/run/user/1000/gnupg/S.gpg-agent") as client:
        ...     greeting = await client.receive()
        ...     responses = await client.transact("GETINFO", "version")
    """

    def __init__(
        self,
        socket_path: str | None = None,
        max_line_length: int = MAX_LINE_LENGTH,
    ) -> None:
        """
        Initialize the client. No I/O happens until connect().

        Args:
            socket_path: Path to the agent's Unix domain socket.
            max_line_length: Line limit (terminator included) for send_data().
        """
        self.socket_path = socket_path
        self.max_line_length = max_line_length
        self.state = ConnectionState.DISCONNECTED

        self._transport: asyncio.Transport | None = None
        self._reassembler = LineReassembler()
        self._lines: PendingQueue[bytes] = PendingQueue()
        self._errors: PendingQueue[TransportError] = PendingQueue()

        # Resolved once the connect attempt settles, either way
        self._ready: asyncio.Future[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        # Why the connection is unusable, once it is
        self._failure: TransportError | None = None

        # Write flow control
        self._write_paused = False
        self._drain_waiters: deque[asyncio.Future[None]] = deque()

    @classmethod
    def from_config(cls, config: ClientConfig) -> AssuanClient:
        """
        Create a client from configuration.

        Args:
            config: Client section of AssuanConfig.

        Returns:
            Configured, unconnected AssuanClient.
        """
        return cls(
            socket_path=config.socket_path,
            max_line_length=config.max_line_length,
        )

    @property
    def pending_lines(self) -> int:
        """Complete lines received but not yet returned by receive()."""
        return len(self._lines)

    @property
    def pending_errors(self) -> int:
        """Transport errors not yet raised to the caller."""
        return len(self._errors)

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self, socket_path: str | None = None) -> None:
        """
        Start connecting to the agent.

        Returns right away in CONNECTING state; use wait_ready() to wait for
        the connection. Must be called from a running event loop.

        Args:
            socket_path: Overrides the path given at construction.

        Raises:
            ClientClosedError: If the client was closed.
            TransportError: If already connecting/connected, or no path is set.
        """
        if self.state is ConnectionState.CLOSED:
            raise ClientClosedError("Client is closed")
        if self.state is not ConnectionState.DISCONNECTED or self._ready is not None:
            raise TransportError(
                f"Cannot connect from state {self.state.value}",
                details={"state": self.state.value},
            )

        path = socket_path or self.socket_path
        if not path:
            raise TransportError("No socket path configured")
        self.socket_path = path

        loop = asyncio.get_running_loop()
        self.state = ConnectionState.CONNECTING
        self._ready = loop.create_future()
        self._connect_task = loop.create_task(self._open_connection(path))

        logger.debug("Assuan connecting", extra={"socket_path": path})

    async def _open_connection(self, path: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.create_unix_connection(lambda: _AssuanProtocol(self), path)
        except Exception as e:
            if self.state is ConnectionState.CLOSED:
                return
            logger.error(
                "Assuan connection failed",
                extra={"socket_path": path, "error": str(e)},
            )
            self.state = ConnectionState.DISCONNECTED
            failure = TransportError(
                f"Failed to connect to {path}: {e}",
                details={"socket_path": path, "error": str(e)},
            )
            failure.__cause__ = e
            self._failure = failure
            self._resolve_ready()

    async def wait_ready(self) -> None:
        """
        Wait until the connection is established.

        Raises:
            ClientClosedError: If the client is closed before or while waiting.
            TransportError: If connect() was not called or the attempt failed.
        """
        if self.state is ConnectionState.CLOSED:
            raise ClientClosedError("Client is closed")
        if self._ready is None:
            raise TransportError("connect() has not been called")

        # Shielded so a cancelled waiter does not cancel the shared future
        await asyncio.shield(self._ready)

        if self.state is ConnectionState.CLOSED:
            raise ClientClosedError("Client closed while connecting")
        if self.state is not ConnectionState.CONNECTED:
            raise self._not_connected_error()

    async def open(self, socket_path: str | None = None) -> None:
        """Connect and wait for the connection."""
        self.connect(socket_path)
        await self.wait_ready()

    def close(self) -> None:
        """
        Close the connection. Idempotent.

        Every suspended wait_ready(), send() and receive() wakes up with
        ClientClosedError, as does every later call.
        """
        if self.state is ConnectionState.CLOSED:
            return

        was_connected = self.state is ConnectionState.CONNECTED
        self.state = ConnectionState.CLOSED

        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        if self._transport is not None:
            self._transport.close()
            self._transport = None

        self._lines.clear()
        self._errors.clear()
        self._reassembler.reset()

        self._resolve_ready()
        self._lines.wake()
        self._release_drain_waiters()

        if was_connected:
            logger.info(
                "Assuan connection closed",
                extra={"socket_path": self.socket_path},
            )

    async def __aenter__(self) -> AssuanClient:
        """Context manager entry."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        """Context manager exit."""
        self.close()

    # -------------------------------------------------------------------------
    # Request / response
    # -------------------------------------------------------------------------

    async def send(self, request: bytes) -> None:
        """
        Send one encoded line and wait until the transport has flushed it.

        Args:
            request: Line from the codec, without terminator.

        Raises:
            TransportError: A pending transport error, or not connected.
            ClientClosedError: If the client is closed.
            InvalidRequestError: If the line contains a terminator.
        """
        self._raise_pending_error()
        self._ensure_connected()

        if LINE_TERMINATOR in request:
            raise InvalidRequestError("Encoded request must be a single line")

        transport = self._transport
        if transport is None:
            raise self._not_connected_error()
        transport.write(bytes(request) + LINE_TERMINATOR)

        logger.debug(
            "Assuan line sent",
            extra={
                "command": request.split(b" ", 1)[0].decode("ascii", "replace"),
                "size": len(request) + len(LINE_TERMINATOR),
            },
        )

        await self._drain()

    async def send_command(self, command: str, parameters: str | None = None) -> None:
        """Encode and send a command line."""
        await self.send(encode_command(command, parameters))

    async def send_data(self, payload: bytes) -> None:
        """Send a payload as one or more D lines within max_line_length."""
        for line in encode_raw_data_lines(payload, self.max_line_length):
            await self.send(line)

    async def receive(self) -> Response:
        """
        Return the oldest complete line from the agent.

        Waits without limit until a line arrives.

        Raises:
            TransportError: A pending transport error, or not connected.
            ClientClosedError: If the client is closed.
        """
        while True:
            self._raise_pending_error()
            if self.state is ConnectionState.CLOSED:
                raise ClientClosedError("Client is closed")

            line = self._lines.get_nowait()
            if line is not None:
                logger.debug("Assuan line received", extra={"size": len(line)})
                return Response(line)

            if self.state is not ConnectionState.CONNECTED:
                raise self._not_connected_error()

            await self._lines.wait()

    async def transact(
        self,
        command: str,
        parameters: str | None = None,
    ) -> list[Response]:
        """
        Send a command and collect its responses through the final OK or ERR.

        An ERR line is returned, not raised; inspect the last response.

        Returns:
            Every response of the exchange, the terminal one last.

        Raises:
            UnknownResponseType: If the agent sends an unrecognized line.
        """
        await self.send_command(command, parameters)

        responses: list[Response] = []
        while True:
            response = await self.receive()
            responses.append(response)
            if response.is_terminal:
                return responses

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _raise_pending_error(self) -> None:
        error = self._errors.get_nowait()
        if error is not None:
            raise error

    def _ensure_connected(self) -> None:
        if self.state is ConnectionState.CLOSED:
            raise ClientClosedError("Client is closed")
        if self.state is not ConnectionState.CONNECTED:
            raise self._not_connected_error()

    def _not_connected_error(self) -> TransportError:
        if self._failure is not None:
            error = TransportError(
                f"Not connected to agent: {self._failure.message}",
                details={**self._failure.details, "state": self.state.value},
            )
            error.__cause__ = self._failure
            return error
        return TransportError(
            "Not connected to agent",
            details={"state": self.state.value},
        )

    def _resolve_ready(self) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    async def _drain(self) -> None:
        if self._write_paused and self.state is ConnectionState.CONNECTED:
            waiter = asyncio.get_running_loop().create_future()
            self._drain_waiters.append(waiter)
            try:
                await waiter
            finally:
                if waiter in self._drain_waiters:
                    self._drain_waiters.remove(waiter)

        # The connection may have gone away while the data was buffered
        self._raise_pending_error()
        self._ensure_connected()

    def _release_drain_waiters(self) -> None:
        while self._drain_waiters:
            waiter = self._drain_waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    # Transport callbacks; these run on the event loop and are the only
    # writers of the queues and the state.

    def _on_connection_made(self, transport: asyncio.Transport) -> None:
        if self.state is ConnectionState.CLOSED:
            transport.close()
            return

        self._transport = transport
        # Zero limits: writing pauses whenever anything is buffered, so a
        # drain returns only once the buffer has been handed to the kernel
        transport.set_write_buffer_limits(high=0)
        self.state = ConnectionState.CONNECTED
        self._resolve_ready()

        logger.info(
            "Assuan connected to agent",
            extra={"socket_path": self.socket_path},
        )

    def _on_data_received(self, data: bytes) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        for line in self._reassembler.feed(data):
            self._lines.put(line)

    def _on_connection_lost(self, exc: Exception | None) -> None:
        self._write_paused = False
        self._transport = None
        if self.state is ConnectionState.CLOSED:
            self._release_drain_waiters()
            return

        if exc is None:
            error = TransportError(
                "Connection closed by agent",
                details={"socket_path": self.socket_path},
            )
        else:
            error = TransportError(
                f"Connection lost: {exc}",
                details={"socket_path": self.socket_path, "error": str(exc)},
            )
            error.__cause__ = exc
            self._errors.put(error)

        logger.warning(
            "Assuan connection lost",
            extra={
                "socket_path": self.socket_path,
                "error": str(exc) if exc else None,
                "unterminated_bytes": self._reassembler.pending,
            },
        )

        # A clean EOF is not queued: lines already received stay readable and
        # receive() reports the closed connection once they are consumed
        self.state = ConnectionState.DISCONNECTED
        self._failure = error

        self._resolve_ready()
        self._lines.wake()
        self._release_drain_waiters()

    def _on_pause_writing(self) -> None:
        self._write_paused = True

    def _on_resume_writing(self) -> None:
        self._write_paused = False
        self._release_drain_waiters()
