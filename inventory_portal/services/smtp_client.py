"""
SMTP Client: minimal client-side SMTP over a raw TCP connection.

Speaks the protocol directly to the internal relay (no STARTTLS, no AUTH):

    connect -> greeting -> HELO -> MAIL FROM -> RCPT TO -> DATA -> body -> QUIT

Each command waits for its full reply before the next one is sent (no
pipelining). Any reply whose code is not a number below 400 aborts the
exchange with an SmtpError carrying the raw server line. Once the relay has
accepted the payload the message counts as delivered: a failed QUIT is only
logged. The connection is always closed, whether the exchange succeeded or not.
"""

import asyncio
import base64
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from uuid import uuid4

from ..core.config import Settings


logger = logging.getLogger(__name__)

CRLF = "\r\n"
BASE64_LINE_LENGTH = 76
# 45 bytes -> 60 base64 chars; with "=?utf-8?B?" and "?=" a word is 72 chars
ENCODED_WORD_MAX_BYTES = 45


# =============================================================================
# EXCEPTIONS
# =============================================================================


class SmtpError(Exception):
    """Base exception for SMTP exchanges."""

    def __init__(self, message: str, reply: str | None = None, code: int | None = None):
        super().__init__(message)
        self.reply = reply
        self.code = code


class SmtpReplyError(SmtpError):
    """Server answered with an error code or an unparsable reply."""
    pass


class SmtpConnectionError(SmtpError):
    """Connection could not be opened or was dropped mid-exchange."""
    pass


class SmtpTimeoutError(SmtpError):
    """Server did not answer within the configured timeout."""
    pass


# =============================================================================
# MESSAGE
# =============================================================================


@dataclass
class OutgoingMessage:
    """A single-recipient multipart/alternative email."""
    sender: str
    recipient: str
    subject: str
    text_body: str
    html_body: str
    sender_name: str | None = None


def parse_reply_code(line: str) -> int:
    """
    Parse and validate the 3-digit code at the start of a reply line.

    Raises:
        SmtpReplyError: code missing, non-numeric, or >= 400
    """
    code_text = line[:3]
    if len(code_text) != 3 or not code_text.isdigit():
        raise SmtpReplyError(f"Malformed SMTP reply: {line.strip()}", reply=line.strip())

    code = int(code_text)
    if code >= 400:
        raise SmtpReplyError(
            f"SMTP error response: {line.strip()}", reply=line.strip(), code=code
        )
    return code


def _single_line(value: str) -> str:
    """Collapse CR/LF so a header value cannot inject extra headers."""
    return re.sub(r"[\r\n]+", " ", value).strip()


def _utf8_chunks(value: str, max_bytes: int) -> list[bytes]:
    """Split ``value`` into UTF-8 chunks without cutting a character."""
    chunks, current = [], b""
    for char in value:
        encoded = char.encode("utf-8")
        if current and len(current) + len(encoded) > max_bytes:
            chunks.append(current)
            current = b""
        current += encoded
    if current:
        chunks.append(current)
    return chunks


def encode_header_value(value: str) -> str:
    """
    RFC 2047 base64 encoded-words for non-ASCII header text.

    Each word stays within 75 characters; words are joined by a folding
    whitespace (CRLF + space).
    """
    value = _single_line(value)
    if value.isascii():
        return value
    return f"{CRLF} ".join(
        f"=?utf-8?B?{base64.b64encode(chunk).decode('ascii')}?="
        for chunk in _utf8_chunks(value, ENCODED_WORD_MAX_BYTES)
    )


def _format_address(address: str, display_name: str | None) -> str:
    address = _single_line(address)
    if not display_name:
        return address
    name = encode_header_value(display_name)
    if name == display_name and any(ch in name for ch in '",;:<>@()'):
        name = '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return f"{name} <{address}>"


def _base64_body(text: str) -> list[str]:
    normalized = text.replace("\r\n", "\n").replace("\n", CRLF)
    encoded = base64.b64encode(normalized.encode("utf-8")).decode("ascii")
    return [
        encoded[i:i + BASE64_LINE_LENGTH]
        for i in range(0, len(encoded), BASE64_LINE_LENGTH)
    ] or [""]


def build_mime_message(
    message: OutgoingMessage,
    boundary: str,
    sent_at: datetime,
    message_id: str,
) -> str:
    """Frame headers and the text/html alternatives (without the DATA terminator)."""
    lines = [
        f"From: {_format_address(message.sender, message.sender_name)}",
        f"To: {_single_line(message.recipient)}",
        f"Subject: {encode_header_value(message.subject)}",
        f"Date: {format_datetime(sent_at)}",
        f"Message-ID: {message_id}",
        "MIME-Version: 1.0",
        f'Content-Type: multipart/alternative; boundary="{boundary}"',
        "",
    ]

    for content_type, body in (
        ("text/plain", message.text_body),
        ("text/html", message.html_body),
    ):
        lines.extend([
            f"--{boundary}",
            f"Content-Type: {content_type}; charset=utf-8",
            "Content-Transfer-Encoding: base64",
            "",
            *_base64_body(body),
            "",
        ])

    lines.append(f"--{boundary}--")
    return CRLF.join(lines)


def dot_stuff(payload: str) -> str:
    """Escape lines starting with '.' so they cannot end DATA early."""
    return CRLF.join(
        "." + line if line.startswith(".") else line
        for line in payload.split(CRLF)
    )


# =============================================================================
# CLIENT
# =============================================================================


class SmtpClient:
    """
    Sends one message per connection to a plaintext SMTP relay.

    Usage:
        client = SmtpClient.from_settings(get_settings())
        await client.send(OutgoingMessage(...))
    """

    def __init__(
        self,
        host: str,
        port: int = 25,
        helo_domain: str = "localhost",
        timeout: float = 15.0,
    ):
        self.host = host
        self.port = port
        self.helo_domain = helo_domain
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpClient":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            helo_domain=settings.smtp_helo_domain,
            timeout=settings.smtp_timeout_seconds,
        )

    async def send(self, message: OutgoingMessage) -> None:
        """
        Deliver ``message`` to the relay.

        Raises:
            SmtpReplyError: the server rejected a step before accepting the payload
            SmtpConnectionError: connect failed or the connection dropped
            SmtpTimeoutError: no reply within ``timeout`` seconds
        """
        reader, writer = await self._connect()
        try:
            await self._read_reply(reader)
            await self._command(reader, writer, f"HELO {self.helo_domain}")
            await self._command(reader, writer, f"MAIL FROM:<{_single_line(message.sender)}>")
            await self._command(reader, writer, f"RCPT TO:<{_single_line(message.recipient)}>")
            await self._command(reader, writer, "DATA")

            payload = build_mime_message(
                message,
                boundary=f"=_inventory_{uuid4().hex}",
                sent_at=datetime.now(timezone.utc),
                message_id=f"<{uuid4().hex}@{self.helo_domain}>",
            )
            await self._write(writer, dot_stuff(payload) + f"{CRLF}.{CRLF}")
            await self._read_reply(reader)
            logger.info(f"SMTP message accepted by {self.host}:{self.port} for {message.recipient}")

            # Delivery is confirmed once the payload is accepted
            try:
                await self._command(reader, writer, "QUIT")
            except SmtpError as e:
                logger.warning(f"SMTP QUIT to {self.host}:{self.port} failed after delivery: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"SMTP connection close reported: {e}")

    async def _connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise SmtpTimeoutError(
                f"SMTP timeout connecting to {self.host}:{self.port}"
            ) from e
        except OSError as e:
            raise SmtpConnectionError(
                f"SMTP connection to {self.host}:{self.port} failed: {e}"
            ) from e

    async def _command(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        line: str,
    ) -> int:
        await self._write(writer, line + CRLF)
        return await self._read_reply(reader)

    async def _write(self, writer: asyncio.StreamWriter, data: str) -> None:
        try:
            writer.write(data.encode("utf-8"))
            await asyncio.wait_for(writer.drain(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SmtpTimeoutError("SMTP timeout") from e
        except OSError as e:
            raise SmtpConnectionError(f"SMTP write failed: {e}") from e

    async def _read_line(self, reader: asyncio.StreamReader) -> str:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SmtpTimeoutError("SMTP timeout") from e
        except OSError as e:
            raise SmtpConnectionError(f"SMTP read failed: {e}") from e
        except ValueError as e:
            # StreamReader limit exceeded
            raise SmtpReplyError("Malformed SMTP reply: line too long") from e

        if not raw:
            raise SmtpConnectionError("SMTP connection closed by server")
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def _read_reply(self, reader: asyncio.StreamReader) -> int:
        """Read a (possibly multi-line) reply and validate its code."""
        first_line = await self._read_line(reader)
        line = first_line
        # "250-..." continues, "250 ..." ends the reply
        while len(line) > 3 and line[3] == "-":
            line = await self._read_line(reader)

        try:
            return parse_reply_code(first_line)
        except SmtpReplyError as e:
            logger.error(f"SMTP exchange with {self.host}:{self.port} failed: {e.reply}")
            raise
