from typing import List

import httpx

from coin_indexer.transactions import Transaction

# ---------- light wrappers ----------
async def fetch_transactions(client: httpx.AsyncClient, start: int, limit: int) -> List[Transaction]:
    """
    Up to ``limit`` committed transactions from ``start``, gap-free.
    An empty list means the node has nothing past ``start`` yet.
    """
    r = await client.get("/v1/transactions", params={"start": start, "limit": limit})
    r.raise_for_status()
    txns = [Transaction.model_validate(t) for t in r.json()]
    for offset, txn in enumerate(txns):
        if txn.version != start + offset:
            raise ValueError(f"node returned version {txn.version}, expected {start + offset}")
    return txns
