import struct
import zlib
from asyncio import StreamReader

import bson
import pytest

from wireops.core.compressors import Zlib
from wireops.core.errors import ConnectionFailedError, ServerCommandError
from wireops.core.models import DeleteFlags
from wireops.core.typings import MessageOpCode
from wireops.message import (
    op_compressed,
    op_delete,
    op_msg,
    op_query_command,
    pack_message,
    read_message,
    unpack_reply,
)

EXAMPLE_DATA = {
    "foo": "bar",
    "spam": "eggs",
}


def _reader_for(*chunks: bytes) -> StreamReader:
    reader = StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    reader.feed_eof()
    return reader


def _op_reply(document: dict, flags: int = 0) -> bytes:
    return struct.pack("<iqii", flags, 0, 0, 1) + bson.encode(document)


@pytest.mark.asyncio()
async def test_parser() -> None:
    header, message = pack_message(MessageOpCode.OP_MESSAGE, op_msg(EXAMPLE_DATA))

    item = await read_message(_reader_for(message))
    assert item.header == header

    parsed_data = await unpack_reply(item)
    assert parsed_data == EXAMPLE_DATA


@pytest.mark.asyncio()
async def test_parser_document_sequence() -> None:
    command = {"insert": "people", "documents": [EXAMPLE_DATA, EXAMPLE_DATA, EXAMPLE_DATA]}
    _, message = pack_message(
        MessageOpCode.OP_MESSAGE, op_msg(command, list_key="documents")
    )

    parsed_data = await unpack_reply(await read_message(_reader_for(message)))

    assert parsed_data == command
    # the caller's document is left alone
    assert "documents" in command


@pytest.mark.asyncio()
async def test_parser_op_reply() -> None:
    _, message = pack_message(MessageOpCode.OP_REPLY, _op_reply({"ok": 1, "n": 3}))

    parsed_data = await unpack_reply(await read_message(_reader_for(message)))

    assert parsed_data == {"ok": 1, "n": 3}


@pytest.mark.asyncio()
async def test_parser_op_reply_query_failure() -> None:
    _, message = pack_message(
        MessageOpCode.OP_REPLY, _op_reply({"$err": "bad query", "code": 2}, flags=2)
    )

    with pytest.raises(ServerCommandError) as info:
        await unpack_reply(await read_message(_reader_for(message)))

    assert info.value.code == 2
    assert info.value.errmsg == "bad query"


@pytest.mark.asyncio()
async def test_parser_compressed() -> None:
    body = await op_compressed(MessageOpCode.OP_MESSAGE, op_msg(EXAMPLE_DATA), Zlib)
    _, message = pack_message(MessageOpCode.OP_COMPRESSED, body)

    original_opcode, length, compressor_id = struct.unpack("<iiB", body[:9])
    assert original_opcode == MessageOpCode.OP_MESSAGE
    assert compressor_id == Zlib.id
    assert len(zlib.decompress(body[9:])) == length

    parsed_data = await unpack_reply(await read_message(_reader_for(message)))
    assert parsed_data == EXAMPLE_DATA


@pytest.mark.asyncio()
async def test_parser_rejects_unexpected_opcode() -> None:
    _, message = pack_message(MessageOpCode.OP_DELETE, op_delete("db.coll", {}))

    with pytest.raises(ConnectionFailedError, match="Unexpected reply opcode"):
        await unpack_reply(await read_message(_reader_for(message)))


def test_op_delete_layout() -> None:
    selector = {"status": "old"}
    body = op_delete("db.coll", selector, DeleteFlags.single_remove)

    assert body[:4] == b"\x00\x00\x00\x00"
    assert body[4:12] == b"db.coll\x00"
    assert struct.unpack("<i", body[12:16]) == (1,)
    assert bson.decode(body[16:]) == selector


def test_op_query_command_layout() -> None:
    body = op_query_command("admin", {"isMaster": 1})

    assert body[:4] == b"\x00\x00\x00\x00"
    assert body[4:15] == b"admin.$cmd\x00"
    assert struct.unpack("<ii", body[15:23]) == (0, -1)
    assert bson.decode(body[23:]) == {"isMaster": 1}


def test_pack_message_header() -> None:
    header, message = pack_message(MessageOpCode.OP_DELETE, b"abcd")

    assert header.message_length == 20
    assert header.response_to == 0
    assert struct.unpack("<iiii", message[:16]) == tuple(header)
    assert message[16:] == b"abcd"
