"""
Assuan protocol client.

A small asyncio library for talking to GnuPG-family agents (gpg-agent,
scdaemon, dirmngr...) over their Unix domain sockets. It frames and parses
Assuan lines and sequences one request at a time; what the commands mean
is up to the caller.
"""

from assuan_client.client import AssuanClient, ConnectionState
from assuan_client.errors import (
    AssuanError,
    ClientClosedError,
    FramingError,
    InvalidRequestError,
    ResponseParseError,
    ResponseTypeMismatch,
    TransportError,
    UnknownResponseType,
)
from assuan_client.framing import LineReassembler
from assuan_client.protocol import (
    OutboundCommand,
    OutboundRawData,
    RequestType,
    Response,
    ResponseComment,
    ResponseError,
    ResponseInformation,
    ResponseInquire,
    ResponseOk,
    ResponseRawData,
    ResponseType,
    classify,
    encode_command,
    encode_raw_data,
    encode_raw_data_lines,
    percent_decode,
    percent_encode,
)

__version__ = "0.1.0"

__all__ = [
    "AssuanClient",
    "AssuanError",
    "ClientClosedError",
    "ConnectionState",
    "FramingError",
    "InvalidRequestError",
    "LineReassembler",
    "OutboundCommand",
    "OutboundRawData",
    "RequestType",
    "Response",
    "ResponseComment",
    "ResponseError",
    "ResponseInformation",
    "ResponseInquire",
    "ResponseOk",
    "ResponseParseError",
    "ResponseRawData",
    "ResponseType",
    "ResponseTypeMismatch",
    "TransportError",
    "UnknownResponseType",
    "classify",
    "encode_command",
    "encode_raw_data",
    "encode_raw_data_lines",
    "percent_decode",
    "percent_encode",
]
