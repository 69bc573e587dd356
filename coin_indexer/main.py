import asyncio

import httpx
import uvloop

from coin_indexer import config
from coin_indexer.db import db, ensure_schema, get_meta, set_meta
from coin_indexer.errors import TransactionProcessingError
from coin_indexer.fetcher import fetch_transactions
from coin_indexer.indexer import NAME, CoinTransactionProcessor
from coin_indexer.logger import get_logger

logger = get_logger(__name__)

LAST_SUCCESS_KEY = f"{NAME}:last_success_version"

async def fetch_batches(client, start_from: int):
    """Up to PROCESSOR_TASKS consecutive batches of BATCH_SIZE transactions."""
    batches = []
    version = start_from
    for _ in range(config.PROCESSOR_TASKS):
        txns = await fetch_transactions(client, version, config.BATCH_SIZE)
        if not txns:
            break
        batches.append(txns)
        version = txns[-1].version + 1
        if len(txns) < config.BATCH_SIZE:
            break
    return batches

async def run_range(pool: asyncio.Queue, txns):
    start, end = txns[0].version, txns[-1].version
    conn = await pool.get()
    processor = CoinTransactionProcessor(conn)
    fut = asyncio.ensure_future(
        asyncio.to_thread(processor.process_transactions, txns, start, end)
    )
    # the connection goes back only once the worker thread has committed or rolled back
    fut.add_done_callback(lambda _: pool.put_nowait(conn))
    return await asyncio.shield(fut)

async def record_results(conn, results, start_from: int) -> int:
    """Advance the checkpoint over the contiguous successful prefix; return the next version."""
    for res in results:
        if isinstance(res, TransactionProcessingError):
            logger.error("range_failed", start_version=res.start_version,
                         end_version=res.end_version, error=str(res.cause))
            await asyncio.sleep(config.POLL_INTERVAL_S)
            break
        if isinstance(res, BaseException):
            raise res
        await asyncio.to_thread(set_meta, conn, LAST_SUCCESS_KEY, str(res.end_version))
        start_from = res.end_version + 1
    return start_from

async def main():
    if not config.NODE_URL:
        raise SystemExit("Missing NODE_URL in .env")

    conn = db()
    ensure_schema(conn)
    pool = asyncio.Queue()
    for _ in range(config.PROCESSOR_TASKS):
        pool.put_nowait(db())

    last_success = int(get_meta(conn, LAST_SUCCESS_KEY, str(config.STARTING_VERSION - 1)))
    start_from = last_success + 1
    logger.info("processor_starting", name=NAME, start_version=start_from, node_url=config.NODE_URL)

    async with httpx.AsyncClient(base_url=config.NODE_URL, timeout=30.0) as client:
        while True:
            try:
                batches = await fetch_batches(client, start_from)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("fetch_failed", start_version=start_from, error=str(e))
                await asyncio.sleep(config.POLL_INTERVAL_S)
                continue
            if not batches:
                await asyncio.sleep(config.POLL_INTERVAL_S)
                continue

            results = await asyncio.gather(*[run_range(pool, b) for b in batches],
                                           return_exceptions=True)
            start_from = await record_results(conn, results, start_from)

def cli():
    uvloop.run(main())

if __name__ == "__main__":
    cli()
