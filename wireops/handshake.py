# SPDX-License-Identifier: MIT

"""The bootstrap sequence that runs on every new connection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Generic, Protocol, TypeVar

from .core.compressors import list_compressors
from .core.errors import (
    ArgumentError,
    AuthenticationError,
    ConnectionFailedError,
    ServerCommandError,
)
from .core.timeout import TimeBudget, Timeout
from .description import BuildInfoResult, ConnectionDescription, IsMasterResult

if TYPE_CHECKING:
    from .connection import Connection
    from .core.cancellation import CancellationToken
    from .core.typings import Document

T = TypeVar("T")

logger = logging.getLogger(__name__)

ADMIN_DATABASE = "admin"


class Authenticator(Protocol):
    """Authenticates a connection once its description is known."""

    async def authenticate(
        self,
        connection: Connection,
        description: ConnectionDescription,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> None:
        """Authenticate ``connection`` or raise.

        Raises:
            AuthenticationError: If the server rejected the credentials.
        """


@dataclass(frozen=True)
class BestEffort(Generic[T]):
    """The outcome of a step whose failure is acceptable.

    Either way the step counts as done; ``error`` only records why there is
    no value.
    """

    value: T | None = None
    error: Exception | None = None

    @property
    def has_value(self) -> bool:
        return self.error is None


async def best_effort(awaitable: Awaitable[T]) -> BestEffort[T]:
    """Await a step, keeping any error instead of raising it.

    Every ``Exception`` is kept, whatever caused it.

    Args:
        awaitable (Awaitable[T]): The step to run.

    Returns:
        BestEffort[T]: The value, or the error that prevented it.
    """
    try:
        return BestEffort(value=await awaitable)
    except Exception as e:  # noqa: BLE001
        logger.debug("Best-effort step failed: %r", e)
        return BestEffort(error=e)


class HandshakeCoordinator:
    """Turns a freshly opened connection into a described, authenticated one.

    The steps always run in this order:

    1. ``isMaster`` to learn the server's capabilities.
    2. ``buildInfo`` to learn the server's version.
    3. Build the initial :class:`ConnectionDescription`.
    4. Authenticate, if an authenticator is configured.
    5. ``getLastError`` to learn the server-side connection id. Any failure of
       this step is ignored and the process-local id is kept.

    The coordinator holds no state of its own.
    """

    def __init__(self, authenticator: Authenticator | None = None) -> None:
        """Create a new HandshakeCoordinator.

        Args:
            authenticator (Authenticator | None, optional): Runs step 4.
                Defaults to None, which skips authentication.
        """
        self._authenticator = authenticator

    async def initialize(
        self,
        connection: Connection,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> ConnectionDescription:
        """Run the handshake on ``connection``.

        Callers must run this at most once per physical connection.

        Args:
            connection (Connection): An open connection that has not been described yet.
            timeout (Timeout, optional): The budget for the whole handshake.
            cancellation (CancellationToken | None, optional): The caller's token.

        Raises:
            ConnectionFailedError: If the capability or version probe fails.
            AuthenticationError: If authentication fails.

        Returns:
            ConnectionDescription: The description of the connection.
        """
        if connection is None:
            msg = "connection must not be None"
            raise ArgumentError(msg)
        budget = TimeBudget.coerce(timeout)

        is_master_command: Document = {"isMaster": 1}
        compressors = connection.options.compressors
        if compressors is not None:
            is_master_command["compression"] = list_compressors(compressors)

        logger.debug("Connection %s: sending isMaster.", connection.connection_id)
        is_master = await self._probe(
            connection, is_master_command, IsMasterResult.from_response, budget, cancellation
        )
        connection.negotiate(is_master)

        logger.debug("Connection %s: sending buildInfo.", connection.connection_id)
        build_info = await self._probe(
            connection, {"buildInfo": 1}, BuildInfoResult.from_response, budget, cancellation
        )

        description = ConnectionDescription(
            connection_id=connection.connection_id,
            is_master=is_master,
            build_info=build_info,
        )

        await self._authenticate(connection, description, budget, cancellation)

        last_error = await best_effort(
            connection.command(
                ADMIN_DATABASE,
                {"getLastError": 1},
                timeout=budget,
                cancellation=cancellation,
            )
        )
        if last_error.has_value and last_error.value is not None:
            server_value = last_error.value.get("connectionId")
            if server_value is not None:
                description = description.with_connection_id(
                    description.connection_id.with_server_value(int(server_value))
                )

        logger.debug(
            "Connection %s: handshake complete, server %s, max wire version %d.",
            description.connection_id,
            description.server_version,
            description.max_wire_version,
        )
        return description

    async def _probe(
        self,
        connection: Connection,
        command: Document,
        parse: Any,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> Any:
        name = next(iter(command))
        try:
            reply = await connection.command(
                ADMIN_DATABASE, command, timeout=timeout, cancellation=cancellation
            )
            return parse(reply)
        except (ServerCommandError, ArgumentError) as e:
            msg = f"{name} failed during the handshake: {e}"
            raise ConnectionFailedError(msg) from e

    async def _authenticate(
        self,
        connection: Connection,
        description: ConnectionDescription,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> None:
        if self._authenticator is None:
            return

        logger.debug("Connection %s: authenticating.", description.connection_id)
        try:
            await self._authenticator.authenticate(
                connection, description, timeout, cancellation
            )
        except ServerCommandError as e:
            msg = f"Authentication failed: {e}"
            raise AuthenticationError(msg) from e
