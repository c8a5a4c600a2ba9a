from __future__ import annotations

import pytest
from conftest import FakeConnection, RecordingBinding, make_description

from wireops.command import CommandOperation
from wireops.core.errors import ArgumentError, OperationTimeoutError, ServerCommandError


def _connection(**replies: object) -> FakeConnection:
    return FakeConnection(replies, description=make_description())


@pytest.mark.asyncio()
async def test_reply_is_returned() -> None:
    connection = _connection(ping={"ok": 1, "extra": "value"})

    reply = await CommandOperation("admin", {"ping": 1}).execute_on_connection(connection)

    assert reply == {"ok": 1, "extra": "value"}
    assert connection.commands == [("admin", {"ping": 1})]


@pytest.mark.asyncio()
async def test_failed_command_raises() -> None:
    connection = _connection(drop={"ok": 0, "errmsg": "ns not found", "code": 26})

    with pytest.raises(ServerCommandError) as info:
        await CommandOperation("db", {"drop": "coll"}).execute_on_connection(connection)

    assert info.value.code == 26
    assert info.value.errmsg == "ns not found"


@pytest.mark.asyncio()
async def test_uses_a_read_source() -> None:
    binding = RecordingBinding(_connection())

    await CommandOperation("admin", {"ping": 1}).execute(binding)

    assert binding.events == [
        "read source acquired",
        "connection acquired",
        "connection released",
        "source released",
    ]


@pytest.mark.asyncio()
async def test_expired_budget_raises() -> None:
    connection = _connection()

    with pytest.raises(OperationTimeoutError):
        await CommandOperation("admin", {"ping": 1}).execute_on_connection(connection, timeout=0)



@pytest.mark.asyncio()
async def test_none_connection_or_binding_is_rejected() -> None:
    operation = CommandOperation("admin", {"ping": 1})

    with pytest.raises(ArgumentError):
        await operation.execute_on_connection(None)  # type: ignore[arg-type]
    with pytest.raises(ArgumentError):
        await operation.execute(None)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("database", "command"),
    [("", {"ping": 1}), ("admin", {}), ("admin", None), ("admin", "ping")],
)
def test_invalid_arguments(database: str, command: object) -> None:
    with pytest.raises(ArgumentError):
        CommandOperation(database, command)  # type: ignore[arg-type]
