#!/usr/bin/env python3
"""
Create the Message Pulse database and containers in a local Cosmos DB emulator.

Start the emulator (https://localhost:8081) first, then run:

    python scripts/init-cosmos-emulator.py

The key below is the emulator's published development key; it grants nothing
outside a local emulator.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src" / "backend"))

from azure.cosmos import PartitionKey
from azure.cosmos.aio import CosmosClient

from db.store import (
    AB_PAIRS_COLLECTION,
    IDEMPOTENCY_COLLECTION,
    MESSAGES_COLLECTION,
    VOTE_COUNTERS_COLLECTION,
    VOTE_DEDUP_COLLECTION,
    VOTE_ROLLUPS_COLLECTION,
    VOTES_COLLECTION,
)

EMULATOR_ENDPOINT = "https://localhost:8081"
EMULATOR_KEY = "C2y6yDjf5/R+ob0N8A7Cgv30VRDJIWEHLM+4QDU5DE2nQ9nDuVTqobD4b8mGGyPMbIZnqyMsEcaGQy67XIw/Jw=="
DATABASE_NAME = "messagepulse"

# container name -> default_ttl. -1 turns on per-item ttl without a default
# expiry; None leaves ttl off entirely.
CONTAINER_TTLS: dict[str, int | None] = {
    MESSAGES_COLLECTION: None,
    AB_PAIRS_COLLECTION: None,
    VOTES_COLLECTION: None,
    VOTE_DEDUP_COLLECTION: -1,
    IDEMPOTENCY_COLLECTION: -1,
    VOTE_COUNTERS_COLLECTION: None,
    VOTE_ROLLUPS_COLLECTION: None,
}


async def init_emulator() -> None:
    # The emulator serves a self-signed certificate
    client = CosmosClient(url=EMULATOR_ENDPOINT, credential=EMULATOR_KEY, connection_verify=False)

    try:
        database = await client.create_database_if_not_exists(id=DATABASE_NAME)
        print(f"database {DATABASE_NAME}: ok")

        for name, default_ttl in CONTAINER_TTLS.items():
            options = {} if default_ttl is None else {"default_ttl": default_ttl}
            await database.create_container_if_not_exists(
                id=name,
                partition_key=PartitionKey(path="/id"),
                **options,
            )
            print(f"container {name}: ok (ttl={default_ttl})")
    except Exception as e:
        print(f"emulator setup failed: {e}", file=sys.stderr)
        print(
            f"is the emulator running? check {EMULATOR_ENDPOINT}/_explorer/index.html",
            file=sys.stderr,
        )
        raise
    finally:
        await client.close()

    print("done. set STORAGE_BACKEND=cosmos and AZURE_COSMOS_CONNECTION_STRING to use it")


if __name__ == "__main__":
    asyncio.run(init_emulator())
