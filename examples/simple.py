import asyncio
import logging

from wireops import (
    CancellationToken,
    CommandOperation,
    Connection,
    DeleteOperation,
    SingleConnectionBinding,
    WriteConcern,
)


async def main() -> None:
    logging.basicConfig(level=logging.DEBUG)

    async with Connection("mongodb://localhost:27017/data") as conn:
        print(conn.description)
        binding = SingleConnectionBinding(conn)
        cancellation = CancellationToken()

        ping = await CommandOperation("admin", {"ping": 1}).execute(binding, timeout=5)
        print(ping)

        delete = DeleteOperation("data.people", {"name": "John"}, multi=True)
        result = await delete.execute(binding, timeout=5, cancellation=cancellation)
        print(f"deleted {result.n} documents")

        unacknowledged = delete.with_write_concern(WriteConcern.UNACKNOWLEDGED)
        await unacknowledged.execute(binding, timeout=5)


asyncio.run(main())
