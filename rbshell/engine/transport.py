"""
Stream Transport.

A TCP connection, optionally wrapped in TLS, carrying framed messages.
The transport is owned by exactly one session and is never shared.
"""

import asyncio
import ssl
from pathlib import Path

from rbshell.core.exceptions import ClientError, TlsConfigurationError, TransportError
from rbshell.core.logging import get_logger, log_with_source
from rbshell.engine.framing import ByteReader, Framing

logger = get_logger(__name__)


def create_tls_context(ca_file: str) -> ssl.SSLContext:
    """
    Build a client TLS context trusting only the given CA bundle.

    Raises:
        TlsConfigurationError: If the file is missing or not a usable bundle.
    """
    path = Path(ca_file)
    if not path.is_file():
        raise TlsConfigurationError(f"CA file not found: {ca_file} (use --ca-file=<path>)")
    try:
        return ssl.create_default_context(cafile=str(path))
    except (ssl.SSLError, OSError) as e:
        raise TlsConfigurationError(f"Could not load CA file {ca_file}: {e}") from e


class StreamTransport:
    """
    Send and receive whole messages over one stream.

    Usage:
        transport = await open_stream_transport("localhost", 23561, framing)
        await transport.send(payload)
        reply = await transport.receive()
        await transport.close()
    """

    def __init__(
        self,
        reader: ByteReader,
        writer: asyncio.StreamWriter,
        framing: Framing,
        encrypted: bool = False,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._framing = framing
        self.encrypted = encrypted
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, data: bytes) -> None:
        """Write one whole message."""
        if self._closed:
            raise TransportError("Transport is closed")
        try:
            self._writer.write(self._framing.encode(data))
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Send failed: {e}") from e
        log_with_source(logger, "engine", "debug", "Message sent", size=len(data))

    async def receive(self) -> bytes:
        """Read one whole message."""
        if self._closed:
            raise TransportError("Transport is closed")
        try:
            data = await self._framing.read_message(self._reader)
        except ClientError:
            raise
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Receive failed: {e}") from e
        log_with_source(logger, "engine", "debug", "Message received", size=len(data))
        return data

    async def exchange(self, data: bytes) -> bytes:
        await self.send(data)
        return await self.receive()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError, ssl.SSLError):
            # peer already gone
            pass


async def open_stream_transport(
    host: str,
    port: int,
    framing: Framing,
    ca_file: str | None = None,
) -> StreamTransport:
    """
    Connect to host:port, with TLS when a CA file is given.

    Raises:
        TlsConfigurationError: If the CA bundle cannot be loaded.
        TransportError: If the connection or TLS handshake fails.
    """
    tls_context = create_tls_context(ca_file) if ca_file is not None else None

    try:
        if tls_context is not None:
            reader, writer = await asyncio.open_connection(
                host, port, ssl=tls_context, server_hostname=host,
            )
        else:
            reader, writer = await asyncio.open_connection(host, port)
    except (ssl.SSLError, ConnectionError, OSError) as e:
        raise TransportError(f"Could not connect to {host}:{port}: {e}") from e

    log_with_source(
        logger, "engine", "info", "Connected",
        address=f"{host}:{port}", tls=tls_context is not None,
    )
    return StreamTransport(reader, writer, framing, encrypted=tls_context is not None)
