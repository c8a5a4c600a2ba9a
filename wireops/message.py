# SPDX-License-Identifier: MIT

"""Encoding and decoding of wire protocol messages."""

from __future__ import annotations

import asyncio
import io
import logging
import random
import struct
from typing import TYPE_CHECKING, Any

import bson
from bson.codec_options import DEFAULT_CODEC_OPTIONS, CodecOptions

from .core.compressors import compression_lookup
from .core.errors import ConnectionFailedError, ServerCommandError
from .core.models import DeleteFlags, Flags, MessageHeader, ReplyFlags, WireItem
from .core.typings import MessageOpCode, MessageSectionKind

if TYPE_CHECKING:
    from .core.compressors import Compressor
    from .core.typings import Document

logger = logging.getLogger(__name__)

HEADER_SIZE = 16

_header_struct = struct.Struct("<iiii")
_pack_int = struct.Struct("<i").pack
_reply_struct = struct.Struct("<iqii")
_compression_struct = struct.Struct("<iiB")
_ZERO_32 = b"\x00\x00\x00\x00"


def bson_dumps(data: Any, codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS) -> bytes:
    """Encode data as BSON.

    Args:
        data (Any): The data to encode.
        codec_options (CodecOptions, optional): The encoder settings.

    Returns:
        bytes: The encoded data.
    """
    return bson.encode(data, codec_options=codec_options)


def bson_loads(data: bytes, codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS) -> Any:
    """Decode BSON data.

    Args:
        data (bytes): The data to decode.
        codec_options (CodecOptions, optional): The decoder settings.

    Returns:
        Any: The decoded data.
    """
    return bson.decode(data, codec_options=codec_options)


def _make_c_string(value: str) -> bytes:
    return value.encode("utf-8") + b"\x00"


def new_request_id() -> int:
    return random.randint(-(2**31) + 1, 2**31 - 1)


def pack_message(opcode: int, body: bytes) -> tuple[MessageHeader, bytes]:
    """Prefix a message body with a fresh header.

    Args:
        opcode (int): The opcode of the message.
        body (bytes): The encoded message body.

    Returns:
        tuple[MessageHeader, bytes]: The header and the full message.
    """
    header = MessageHeader(
        message_length=HEADER_SIZE + len(body),
        request_id=new_request_id(),
        response_to=0,
        opcode=opcode,
    )
    return header, _header_struct.pack(*header) + body


def op_msg(
    command: Document,
    *,
    flags: int = 0,
    list_key: str | None = None,
    codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS,
) -> bytes:
    """Make the body of an OP_MSG.

    Args:
        command (Document): The command to encode. It is not modified.
        flags (int, optional): The flags to use. Defaults to 0.
        list_key (str | None, optional): Send this field of ``command`` as a
            document sequence instead of inside the body.
        codec_options (CodecOptions, optional): The encoder settings.

    Returns:
        bytes: The encoded body.
    """
    body = dict(command)
    arr: list[Any] | None = None
    if list_key is not None:
        arr = body.pop(list_key)

    data_bytes = io.BytesIO()
    data_bytes.write(struct.pack("<I", flags))

    data_bytes.write(struct.pack("<B", MessageSectionKind.BODY))
    data_bytes.write(bson_dumps(body, codec_options))

    if arr is not None and list_key is not None:
        section_writer = io.BytesIO()
        section_writer.write(_make_c_string(list_key))
        for document in arr:
            section_writer.write(bson_dumps(document, codec_options))

        data_bytes.write(struct.pack("<B", MessageSectionKind.DOCUMENT_SEQUENCE))
        data_bytes.write(struct.pack("<i", section_writer.tell() + 4))
        data_bytes.write(section_writer.getvalue())

    return data_bytes.getvalue()


def op_query_command(
    database: str,
    command: Document,
    codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS,
) -> bytes:
    """Make the body of an OP_QUERY that runs a command on ``<database>.$cmd``.

    Args:
        database (str): The database to run the command against.
        command (Document): The command to encode.
        codec_options (CodecOptions, optional): The encoder settings.

    Returns:
        bytes: The encoded body.
    """
    return b"".join(
        [
            _ZERO_32,  # flags
            _make_c_string(f"{database}.$cmd"),
            _pack_int(0),  # numberToSkip
            _pack_int(-1),  # numberToReturn
            bson_dumps(command, codec_options),
        ]
    )


def op_delete(
    full_collection_name: str,
    selector: Document,
    flags: DeleteFlags = DeleteFlags.none,
    codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS,
) -> bytes:
    """Make the body of a legacy OP_DELETE.

    Args:
        full_collection_name (str): The ``db.collection`` name.
        selector (Document): The filter of documents to remove.
        flags (DeleteFlags, optional): ``single_remove`` to remove at most one.
        codec_options (CodecOptions, optional): The encoder settings.

    Returns:
        bytes: The encoded body.
    """
    return b"".join(
        [
            _ZERO_32,  # reserved
            _make_c_string(full_collection_name),
            _pack_int(int(flags)),
            bson_dumps(selector, codec_options),
        ]
    )


async def op_compressed(opcode: int, body: bytes, compressor: type[Compressor]) -> bytes:
    """Wrap a message body in an OP_COMPRESSED body.

    Args:
        opcode (int): The opcode of the wrapped message.
        body (bytes): The wrapped message body.
        compressor (type[Compressor]): The compressor to use.

    Returns:
        bytes: The OP_COMPRESSED body.
    """
    compressed = await asyncio.get_running_loop().run_in_executor(
        None, compressor().compress, body
    )
    return _compression_struct.pack(opcode, len(body), compressor.id) + compressed


async def read_message(reader: asyncio.StreamReader) -> WireItem:
    """Read one message header and load the data.

    Args:
        reader (asyncio.StreamReader): The reader to read from.

    Returns:
        WireItem: The parsed header and data.
    """
    header_data = await reader.readexactly(HEADER_SIZE)
    header = MessageHeader(*_header_struct.unpack(header_data))
    length = header.message_length - HEADER_SIZE
    if length < 0:
        msg = f"Invalid message length {header.message_length}"
        raise ConnectionFailedError(msg)
    data = await reader.readexactly(length)
    return WireItem(header, data)


def _parse_op_msg(data: bytes, codec_options: CodecOptions) -> Any:
    (flags_bits,) = struct.unpack("<I", data[:4])
    _flags = Flags(flags_bits).verify()

    body: Any | None = None
    payload = data[4:]
    if _flags & Flags.checksum_present:
        payload = payload[:-4]
    reader = io.BytesIO(payload)

    while reader.tell() < len(payload):
        (kind,) = struct.unpack("<B", reader.read(1))

        if kind == MessageSectionKind.BODY:
            if body is not None:
                msg = "Expected only one body section, but found multiple"
                raise ConnectionFailedError(msg)

            # The length prefix belongs to the BSON document itself
            (length,) = struct.unpack("<i", reader.read(4))
            reader.seek(-4, io.SEEK_CUR)
            body = bson_loads(reader.read(length), codec_options)

        elif kind == MessageSectionKind.DOCUMENT_SEQUENCE:
            if body is None:
                msg = "Body section must come before document sequence"
                raise ConnectionFailedError(msg)

            (size,) = struct.unpack("<i", reader.read(4))

            string_bytes = bytearray()
            while (byte := reader.read(1)) != b"\x00":
                string_bytes += byte

            string = string_bytes.decode("utf-8")

            if body.get(string) is None:
                body[string] = []

            body[string].extend(
                bson.decode_all(
                    reader.read(size - 4 - len(string_bytes) - 1),
                    codec_options,
                )
            )
        else:
            msg = f"Unknown OP_MSG section kind {kind}"
            raise ConnectionFailedError(msg)

    return body


def _parse_op_reply(data: bytes, codec_options: CodecOptions) -> Any:
    flags, _cursor_id, _starting_from, number_returned = _reply_struct.unpack(
        data[: _reply_struct.size]
    )
    documents = bson.decode_all(data[_reply_struct.size :], codec_options)
    if number_returned != 1 or len(documents) != 1:
        msg = f"Expected a single document in OP_REPLY, got {len(documents)}"
        raise ConnectionFailedError(msg)

    if ReplyFlags(flags) & ReplyFlags.query_failure:
        raise ServerCommandError(documents[0])
    return documents[0]


async def unpack_reply(
    item: WireItem, codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS
) -> Any:
    """Parse the data from a WireItem.

    Args:
        item (WireItem): The message to parse.
        codec_options (CodecOptions, optional): The decoder settings.

    Raises:
        ConnectionFailedError: If the message is malformed or of an unexpected kind.
        ServerCommandError: If an OP_REPLY reports a query failure.

    Returns:
        Any: The reply document.
    """
    logger.debug("< %s", item.header)
    if item.header.opcode == MessageOpCode.OP_COMPRESSED:
        (
            original_opcode,
            uncompressed_length,
            compressor_id,
        ) = _compression_struct.unpack(item.data[: _compression_struct.size])
        compressor = compression_lookup.get(compressor_id)
        if compressor is None:
            msg = f"Unknown compressor id {compressor_id}"
            raise ConnectionFailedError(msg)

        logger.debug("  decompressing with %s", compressor.name)
        decompressed_data = await asyncio.get_running_loop().run_in_executor(
            None, compressor().decompress, item.data[_compression_struct.size :]
        )

        if len(decompressed_data) != uncompressed_length:
            msg = "Decompressed data is not the expected length"
            raise ConnectionFailedError(msg)

        item = WireItem(
            item.header._replace(opcode=original_opcode),
            decompressed_data,
        )

    if item.header.opcode == MessageOpCode.OP_MESSAGE:
        return _parse_op_msg(item.data, codec_options)
    if item.header.opcode == MessageOpCode.OP_REPLY:
        return _parse_op_reply(item.data, codec_options)

    msg = f"Unexpected reply opcode {item.header.opcode}"
    raise ConnectionFailedError(msg)
