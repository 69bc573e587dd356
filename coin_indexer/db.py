import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence, Tuple, Type

from coin_indexer import config
from coin_indexer.errors import TransactionCommitError
from coin_indexer.logger import get_logger
from coin_indexer.models import CoinActivity, CoinInfo, CurrentAnsLookup, Row
from coin_indexer.reducer import ReducedRange

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# OverflowError: integers past signed 64-bit fail at bind time
STORE_ERRORS = (sqlite3.Error, UnicodeEncodeError, OverflowError, ValueError)

def db(path: str = None):
    conn = sqlite3.connect(path or config.DB_PATH, isolation_level=None,
                           check_same_thread=False, timeout=30.0)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    return conn

def ensure_schema(conn: sqlite3.Connection):
    conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))

def get_meta(conn, key, default):
    row = conn.execute("SELECT v FROM meta WHERE k=?", (key,)).fetchone()
    return row[0] if row else default

def set_meta(conn, key, value):
    conn.execute("INSERT INTO meta(k,v) VALUES(?,?) ON CONFLICT(k) DO UPDATE SET v=excluded.v;", (key, value))

@contextmanager
def atomic(conn: sqlite3.Connection):
    """One write transaction on an autocommit connection; rolled back on any error."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise

# ---------- chunking ----------
def chunk_size(fields_per_row: int, max_params: int = config.MAX_QUERY_PARAMETERS) -> int:
    if fields_per_row <= 0:
        raise ValueError(f"fields_per_row must be positive, got {fields_per_row}")
    return max(1, max_params // fields_per_row)

def get_chunks(num_items: int, fields_per_row: int,
               max_params: int = config.MAX_QUERY_PARAMETERS) -> Iterator[Tuple[int, int]]:
    """(start, end) slices covering range(num_items) in order."""
    size = chunk_size(fields_per_row, max_params)
    for start in range(0, num_items, size):
        yield start, min(start + size, num_items)

# ---------- upserts ----------
# coin_infos keep the first row ever seen, coin_activities are append-only,
# current_ans_lookup takes the newest version.
def _conflict_clause(model: Type[Row]) -> str:
    pk = ", ".join(model.primary_key)
    if model is CurrentAnsLookup:
        updates = ", ".join(f"{c}=excluded.{c}" for c in model.columns() if c not in model.primary_key)
        return (f"ON CONFLICT({pk}) DO UPDATE SET {updates} "
                f"WHERE {model.__tablename__}.last_transaction_version <= excluded.last_transaction_version")
    return f"ON CONFLICT({pk}) DO NOTHING"

def upsert_rows(conn, model: Type[Row], rows: Sequence[Row],
                max_params: int = config.MAX_QUERY_PARAMETERS):
    if not rows:
        return
    cols = model.columns()
    placeholder = "(" + ",".join(["?"] * len(cols)) + ")"
    conflict = _conflict_clause(model)
    for start, end in get_chunks(len(rows), model.field_count(), max_params):
        chunk = rows[start:end]
        params = [p for r in chunk for p in r.to_params()]
        conn.execute(f"""
            INSERT INTO {model.__tablename__} ({",".join(cols)})
            VALUES {",".join([placeholder] * len(chunk))}
            {conflict}
        """, params)

def insert_to_db_impl(conn, reduced: ReducedRange, max_params: int):
    upsert_rows(conn, CoinActivity, reduced.coin_activities, max_params)
    upsert_rows(conn, CoinInfo, list(reduced.coin_infos.values()), max_params)
    upsert_rows(conn, CurrentAnsLookup, list(reduced.ans_lookups.values()), max_params)

def clean_data_for_db(reduced: ReducedRange) -> ReducedRange:
    cleaned = ReducedRange(coin_activities=[r.cleaned() for r in reduced.coin_activities])
    for row in reduced.coin_infos.values():
        row = row.cleaned()
        cleaned.coin_infos.setdefault(row.coin_type, row)
    for row in reduced.ans_lookups.values():
        row = row.cleaned()
        cleaned.ans_lookups[row.pk] = row
    return cleaned

def insert_to_db(conn, name: str, start_version: int, end_version: int,
                 reduced: ReducedRange, max_params: int = config.MAX_QUERY_PARAMETERS):
    """
    Write a reduced range in one transaction. On failure retry once with cleaned
    rows; a second failure raises TransactionCommitError for the whole range.
    """
    logger.debug("inserting_to_db", name=name, start_version=start_version,
                 end_version=end_version, **reduced.row_counts())
    try:
        with atomic(conn):
            insert_to_db_impl(conn, reduced, max_params)
        return
    except STORE_ERRORS as e:
        logger.warning("insert_failed_retrying_clean", name=name, start_version=start_version,
                       end_version=end_version, error=str(e))

    try:
        with atomic(conn):
            insert_to_db_impl(conn, clean_data_for_db(reduced), max_params)
    except STORE_ERRORS as e:
        logger.error("insert_failed", name=name, start_version=start_version,
                     end_version=end_version, error=str(e))
        raise TransactionCommitError(name, start_version, end_version, e) from e
