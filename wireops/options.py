# SPDX-License-Identifier: MIT

"""Connection configuration parsed from a MongoDB URI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple
from urllib.parse import parse_qs, unquote, urlparse

from .core.errors import ArgumentError
from .write_concern import WriteConcern

DEFAULT_PORT = 27017


class Credentials(NamedTuple):
    username: str
    password: str | None
    source: str


def _int_option(query: dict[str, list[str]], name: str) -> int | None:
    values = query.get(name)
    if not values:
        return None
    try:
        return int(values[0])
    except ValueError as e:
        msg = f"Option {name} must be an integer, got {values[0]!r}"
        raise ArgumentError(msg) from e


@dataclass(frozen=True)
class ConnectionOptions:
    """Everything a connection needs to know before it is opened."""

    host: str = "localhost"
    port: int = DEFAULT_PORT
    compressors: list[str] | None = None
    connect_timeout: float | None = None
    credentials: Credentials | None = None
    write_concern: WriteConcern = field(default=WriteConcern.ACKNOWLEDGED)

    @classmethod
    def from_uri(cls, uri: str) -> ConnectionOptions:
        """Parse a ``mongodb://`` URI.

        Args:
            uri (str): The URI to parse.

        Raises:
            ArgumentError: If the URI or one of its options is invalid.

        Returns:
            ConnectionOptions: The parsed options.
        """
        parsed = urlparse(uri)
        if parsed.scheme != "mongodb":
            msg = f"Expected a mongodb:// URI, got {uri!r}"
            raise ArgumentError(msg)

        query = parse_qs(parsed.query)

        compressors = query.get("compressors", None)
        if compressors is not None:
            compressors = compressors[0].split(",")

        credentials = None
        if parsed.username:
            source = query.get("authSource", [parsed.path[1:] or "admin"])[0]
            credentials = Credentials(
                unquote(parsed.username),
                unquote(parsed.password) if parsed.password is not None else None,
                source,
            )

        connect_timeout_ms = _int_option(query, "connectTimeoutMS")
        wtimeout = _int_option(query, "wtimeoutMS")

        w: int | str | None = None
        if "w" in query:
            raw_w = query["w"][0]
            w = int(raw_w) if raw_w.isdigit() else raw_w
        journal = None
        if "journal" in query:
            journal = query["journal"][0].lower() == "true"

        write_concern = WriteConcern.ACKNOWLEDGED
        if w is not None or journal is not None or wtimeout is not None:
            write_concern = WriteConcern(
                w=1 if w is None else w,
                j=journal,
                wtimeout=wtimeout,
            )

        try:
            port = parsed.port or DEFAULT_PORT
        except ValueError as e:
            msg = f"Invalid port in {uri!r}"
            raise ArgumentError(msg) from e

        return cls(
            host=parsed.hostname or "localhost",
            port=port,
            compressors=compressors,
            connect_timeout=(
                connect_timeout_ms / 1000 if connect_timeout_ms is not None else None
            ),
            credentials=credentials,
            write_concern=write_concern,
        )
