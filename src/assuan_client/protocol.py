"""
Assuan wire codec.

Pure, stateless conversion between typed requests/responses and the byte
lines that travel over the socket. Nothing here performs I/O.

Protocol Format:
- Transport: Unix domain socket, ASCII/UTF-8 lines terminated by LF
- Client requests:
    <command>[ <parameters>]      generic command
    D <percent-encoded bytes>     raw data
- Server responses:
    OK[ <message>]                success, ends an exchange
    ERR <code>[ <description>]    failure, ends an exchange
    S <keyword> <text>            status line (or inquire, see below)
    # <comment>                   comment
    D <percent-encoded bytes>     raw data

Lines passed to and returned from this module never include the LF; the
client appends and strips it.

See https://www.gnupg.org/documentation/manuals/assuan/Client-requests.html
and https://www.gnupg.org/documentation/manuals/assuan/Server-responses.html
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import cast
from urllib.parse import unquote_to_bytes

from assuan_client.errors import (
    FramingError,
    InvalidRequestError,
    ResponseParseError,
    ResponseTypeMismatch,
    UnknownResponseType,
)

# =============================================================================
# Protocol Constants
# =============================================================================

LINE_TERMINATOR = b"\n"

# Assuan limits a line, terminator included, to 1000 bytes
MAX_LINE_LENGTH = 1000

RAW_DATA_PREFIX = b"D "

# Bytes that go out unescaped in a D line: printable ASCII except "%".
# Space is escaped too, so an encoded payload is a single token.
_SAFE_BYTES = frozenset(range(0x21, 0x7F)) - {ord("%")}

# Wire form of every byte value, indexed by the byte
_ESCAPE_TABLE = tuple(
    bytes([value]) if value in _SAFE_BYTES else b"%%%02X" % value
    for value in range(256)
)

# A "%" that does not start a two-digit hex escape
_BAD_ESCAPE = re.compile(rb"%(?![0-9A-Fa-f]{2})")

_ERROR_PATTERN = re.compile(rb"ERR (?P<code>\d+)(?: (?P<description>.*))?", re.DOTALL)
_STATUS_PATTERN = re.compile(rb"S (?P<keyword>\S+)(?: (?P<rest>.*))?", re.DOTALL)


class RequestType(Enum):
    """Client request kinds, by wire prefix."""

    COMMAND = ""
    RAW_DATA = "D"


class ResponseType(Enum):
    """
    Server response kinds, by wire prefix.

    Declaration order is the match order used by classify(). Inquire has no
    member: on the wire it is indistinguishable from INFORMATION.
    """

    OK = "OK"
    ERROR = "ERR"
    INFORMATION = "S"
    COMMENT = "#"
    RAW_DATA = "D"

    @property
    def prefix(self) -> bytes:
        """The prefix as it appears at the start of a line."""
        return self.value.encode("ascii")


# =============================================================================
# Percent Encoding
# =============================================================================


def percent_encode(data: bytes) -> bytes:
    """
    Escape arbitrary bytes into a single line of printable ASCII.

    Works on bytes directly; no text codec is involved, so payloads that
    are not valid text in any encoding survive unchanged.

    Args:
        data: Raw payload.

    Returns:
        The escaped payload. Never contains CR, LF or space.
    """
    return b"".join(_ESCAPE_TABLE[value] for value in data)


def percent_decode(data: bytes) -> bytes:
    """
    Reverse percent_encode().

    Bytes other than "%" are taken verbatim, since servers only escape what
    Assuan requires (at least "%", CR and LF).

    Args:
        data: Escaped payload.

    Returns:
        The original bytes.

    Raises:
        FramingError: If a "%" is not followed by two hex digits.
    """
    bad = _BAD_ESCAPE.search(data)
    if bad is not None:
        raise FramingError(
            "Malformed percent-escape in raw data",
            details={"offset": bad.start()},
        )
    return unquote_to_bytes(bytes(data))


# =============================================================================
# Encoding
# =============================================================================


def _check_single_line(field_name: str, value: str) -> None:
    """Reject text that would end the line early."""
    if "\n" in value or "\r" in value:
        raise InvalidRequestError(
            f"Request {field_name} must not contain a line terminator",
            details={"field": field_name},
        )


def _check_command(command: str, parameters: str | None) -> None:
    if not command:
        raise InvalidRequestError("Request command must not be empty")
    _check_single_line("command", command)
    if any(char.isspace() for char in command):
        raise InvalidRequestError(
            "Request command must be a single token",
            details={"command": command},
        )
    if parameters is not None:
        _check_single_line("parameters", parameters)


def encode_command(command: str, parameters: str | None = None) -> bytes:
    """
    Encode a command line.

    Parameters are sent as given; callers must escape anything the specific
    command requires.

    Args:
        command: Command token, e.g. "GETINFO".
        parameters: Optional parameter text. An empty string counts as absent.

    Returns:
        b"<command> <parameters>" or b"<command>", without the terminator.

    Raises:
        InvalidRequestError: If the command is empty or not a single token,
            or either field contains CR or LF.
    """
    _check_command(command, parameters)

    if parameters:
        line = f"{command} {parameters}"
    else:
        line = command
    return line.encode("utf-8")


def encode_raw_data(payload: bytes) -> bytes:
    """
    Encode a raw data line: b"D " followed by the percent-encoded payload.

    No length limit is applied; see encode_raw_data_lines() for that.
    """
    return RAW_DATA_PREFIX + percent_encode(payload)


def encode_raw_data_lines(
    payload: bytes,
    max_line_length: int = MAX_LINE_LENGTH,
) -> list[bytes]:
    """
    Encode a payload as as many D lines as the line limit requires.

    Escape sequences are never split across lines. An empty payload still
    produces one (empty) D line.

    Args:
        payload: Raw bytes to send.
        max_line_length: Limit per line, terminator included.

    Returns:
        Encoded lines without terminators, in order.

    Raises:
        InvalidRequestError: If the limit cannot fit one escaped byte.
    """
    budget = max_line_length - len(RAW_DATA_PREFIX) - len(LINE_TERMINATOR)
    if budget < 3:
        raise InvalidRequestError(
            f"Line limit too small for raw data: {max_line_length}",
            details={"max_line_length": max_line_length},
        )

    lines: list[bytes] = []
    current = bytearray()
    for value in payload:
        token = _ESCAPE_TABLE[value]
        if len(current) + len(token) > budget:
            lines.append(RAW_DATA_PREFIX + bytes(current))
            current.clear()
        current += token

    if current or not lines:
        lines.append(RAW_DATA_PREFIX + bytes(current))
    return lines


# =============================================================================
# Request Models
# =============================================================================


@dataclass(frozen=True)
class OutboundCommand:
    """
    A command request.

    Attributes:
        command: Command token (e.g. "GETINFO", "NOP").
        parameters: Optional parameter text, sent verbatim.
    """

    command: str
    parameters: str | None = None

    def __post_init__(self) -> None:
        _check_command(self.command, self.parameters)

    @property
    def request_type(self) -> RequestType:
        return RequestType.COMMAND

    def encode(self) -> bytes:
        """Encode to a wire line."""
        return encode_command(self.command, self.parameters)


@dataclass(frozen=True)
class OutboundRawData:
    """
    A raw data request.

    Attributes:
        payload: Any bytes, including control bytes and non-text sequences.
    """

    payload: bytes

    @property
    def request_type(self) -> RequestType:
        return RequestType.RAW_DATA

    def encode(self) -> bytes:
        """Encode to a single wire line, regardless of length."""
        return encode_raw_data(self.payload)

    def encode_lines(self, max_line_length: int = MAX_LINE_LENGTH) -> list[bytes]:
        """Encode to line-limited D lines."""
        return encode_raw_data_lines(self.payload, max_line_length)


OutboundRequest = OutboundCommand | OutboundRawData


def encode_request(request: OutboundRequest) -> bytes:
    """Encode either kind of request to its wire line."""
    return request.encode()


# =============================================================================
# Response Models
# =============================================================================


@dataclass(frozen=True)
class ResponseOk:
    """OK line. message is None for a bare "OK"."""

    message: str | None = None


@dataclass(frozen=True)
class ResponseError:
    """ERR line with its numeric error code (a gpg-error value)."""

    code: int
    description: str | None = None


@dataclass(frozen=True)
class ResponseInformation:
    """S line read as status information."""

    keyword: str
    information: str


@dataclass(frozen=True)
class ResponseComment:
    """# line."""

    comment: str


@dataclass(frozen=True)
class ResponseRawData:
    """D line with its payload decoded."""

    data: bytes


@dataclass(frozen=True)
class ResponseInquire:
    """S line read as an inquire, by the caller's choice."""

    keyword: str
    parameters: str


DecodedResponse = (
    ResponseOk | ResponseError | ResponseInformation | ResponseComment | ResponseRawData
)


def classify(line: bytes) -> ResponseType:
    """
    Determine a line's response type from its leading bytes.

    Prefixes are tried in ResponseType declaration order and must match at
    position 0.

    Raises:
        UnknownResponseType: If no prefix matches.
    """
    for response_type in ResponseType:
        if line.startswith(response_type.prefix):
            return response_type
    raise UnknownResponseType(
        "Unknown server response type",
        details={"line": bytes(line[:64])},
    )


def _decode_text(raw: bytes, response_type: ResponseType) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ResponseParseError(
            f"{response_type.name} response is not valid UTF-8",
            details={"position": e.start},
        ) from e


def _strip_prefix(line: bytes, response_type: ResponseType) -> bytes | None:
    """
    Return what follows "<prefix> ", or None for a bare prefix.

    Raises:
        ResponseParseError: If the prefix runs into other text.
    """
    prefix = response_type.prefix
    if line == prefix:
        return None
    if line[len(prefix) : len(prefix) + 1] != b" ":
        raise ResponseParseError(
            f"Missing space after {response_type.value!r} prefix",
            details={"line": bytes(line[:64])},
        )
    return line[len(prefix) + 1 :]


def _parse_ok(line: bytes) -> ResponseOk:
    rest = _strip_prefix(line, ResponseType.OK)
    if rest is None:
        return ResponseOk()
    return ResponseOk(_decode_text(rest, ResponseType.OK))


def _parse_error(line: bytes) -> ResponseError:
    match = _ERROR_PATTERN.fullmatch(line)
    if match is None:
        raise ResponseParseError(
            "Failed to parse error response",
            details={"line": bytes(line[:64])},
        )
    description = match.group("description")
    return ResponseError(
        code=int(match.group("code")),
        description=(
            None if description is None else _decode_text(description, ResponseType.ERROR)
        ),
    )


def _parse_information(line: bytes) -> ResponseInformation:
    match = _STATUS_PATTERN.fullmatch(line)
    if match is None:
        raise ResponseParseError(
            "Failed to parse status response",
            details={"line": bytes(line[:64])},
        )
    return ResponseInformation(
        keyword=_decode_text(match.group("keyword"), ResponseType.INFORMATION),
        information=_decode_text(match.group("rest") or b"", ResponseType.INFORMATION),
    )


def _parse_comment(line: bytes) -> ResponseComment:
    rest = _strip_prefix(line, ResponseType.COMMENT)
    return ResponseComment(_decode_text(rest or b"", ResponseType.COMMENT))


def _parse_raw_data(line: bytes) -> ResponseRawData:
    rest = _strip_prefix(line, ResponseType.RAW_DATA)
    return ResponseRawData(percent_decode(rest or b""))


_PARSERS = {
    ResponseType.OK: _parse_ok,
    ResponseType.ERROR: _parse_error,
    ResponseType.INFORMATION: _parse_information,
    ResponseType.COMMENT: _parse_comment,
    ResponseType.RAW_DATA: _parse_raw_data,
}


class Response:
    """
    One inbound line and its interpretation.

    The line is classified on first use and decoded at most once; every
    accessor reads the same cached result, so they always agree with
    `type`.

    Status and inquire lines share the "S" prefix. as_information() and
    as_inquire() parse them identically, and which one applies is up to
    the caller's own protocol state. decode() always reports an "S" line
    as ResponseInformation.

    Example:
        >>> response = Response(b"ERR 67109139 Unknown IPC command")
        >>> response.type
        <ResponseType.ERROR: 'ERR'>
        >>> response.as_error().code
        67109139
    """

    def __init__(self, line: bytes) -> None:
        self._line = bytes(line)

    @classmethod
    def from_bytes(cls, line: bytes) -> Response:
        return cls(line)

    def __repr__(self) -> str:
        return f"Response({self._line[:64]!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Response):
            return NotImplemented
        return self._line == other._line

    def __hash__(self) -> int:
        return hash(self._line)

    @property
    def line(self) -> bytes:
        """The raw line, without terminator."""
        return self._line

    def to_bytes(self) -> bytes:
        return self._line

    @cached_property
    def type(self) -> ResponseType:
        """
        The line's response type.

        Raises:
            UnknownResponseType: If the line has no recognized prefix.
        """
        return classify(self._line)

    @property
    def is_terminal(self) -> bool:
        """Whether this line ends an exchange (OK or ERR)."""
        return self.type in (ResponseType.OK, ResponseType.ERROR)

    def decode(self) -> DecodedResponse:
        """
        Decode into the variant matching `type`.

        Raises:
            UnknownResponseType: If the line has no recognized prefix.
            ResponseParseError: If the payload breaks its grammar.
            FramingError: If a raw data payload has a malformed escape.
        """
        return self._decoded

    @cached_property
    def _decoded(self) -> DecodedResponse:
        return _PARSERS[self.type](self._line)

    def _expect(self, expected: ResponseType) -> DecodedResponse:
        if self.type is not expected:
            raise ResponseTypeMismatch(
                f"Response is {self.type.name}, not {expected.name}",
                details={"expected": expected.value, "actual": self.type.value},
            )
        return self._decoded

    def as_ok(self) -> ResponseOk:
        return cast(ResponseOk, self._expect(ResponseType.OK))

    def as_error(self) -> ResponseError:
        return cast(ResponseError, self._expect(ResponseType.ERROR))

    def as_information(self) -> ResponseInformation:
        return cast(ResponseInformation, self._expect(ResponseType.INFORMATION))

    def as_inquire(self) -> ResponseInquire:
        """
        Read an "S" line as an inquire.

        Parses exactly like as_information(); only the labels differ.
        """
        information = self.as_information()
        return ResponseInquire(
            keyword=information.keyword,
            parameters=information.information,
        )

    def as_comment(self) -> ResponseComment:
        return cast(ResponseComment, self._expect(ResponseType.COMMENT))

    def as_raw_data(self) -> ResponseRawData:
        return cast(ResponseRawData, self._expect(ResponseType.RAW_DATA))
