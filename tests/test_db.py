"""
Tests for chunking, per-table conflict policies and the single degraded retry.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from structlog.testing import capture_logs

import coin_indexer.db as db_module
from coin_indexer.db import chunk_size, get_chunks, get_meta, insert_to_db, set_meta, upsert_rows
from coin_indexer.errors import TransactionCommitError
from coin_indexer.models import CoinActivity, CoinInfo, CurrentAnsLookup
from coin_indexer.reducer import ReducedRange
from tests.builders import ALICE, APT

NOW = datetime(2024, 1, 1)


def _coin_info(coin_type="0x1::test_coin::TestCoin", version=0, supply="1000", name="TestCoin"):
    return CoinInfo(
        coin_type=coin_type, transaction_version_created=version, creator_address=ALICE,
        name=name, symbol="TC", decimals=6,
        supply=None if supply is None else Decimal(supply), inserted_at=NOW,
    )


def _activity(version=1, seq=0, amount="10"):
    return CoinActivity(
        transaction_version=version, event_account_address=ALICE, event_creation_number=2,
        event_sequence_number=seq, owner_address=ALICE, coin_type=APT, amount=Decimal(amount),
        activity_type="0x1::coin::DepositEvent", is_gas_fee=False, is_transaction_success=True,
        entry_function_id_str="0x1::coin::transfer", inserted_at=NOW,
    )


def _ans(domain="alice", version=1, address=None, expiration=100):
    return CurrentAnsLookup(
        domain=domain, subdomain="", registered_address=address,
        last_transaction_version=version,
        expiration_timestamp=datetime(1970, 1, 1) + timedelta(seconds=expiration), inserted_at=NOW,
    )


def _count(conn, table):
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


# --- chunking ---


@pytest.mark.parametrize("num_items,fields,max_params", [
    (0, 8, 100),
    (1, 8, 100),
    (25, 8, 100),
    (100, 12, 12),
    (7, 6, 5),
    (1000, 8, 32766),
])
def test_chunks_are_bounded_and_reconstruct_input(num_items, fields, max_params):
    items = list(range(num_items))
    size = chunk_size(fields, max_params)
    assert 1 <= size <= max(1, max_params // fields)
    chunks = [items[start:end] for start, end in get_chunks(num_items, fields, max_params)]
    assert all(1 <= len(c) <= size for c in chunks)
    assert [i for c in chunks for i in c] == items


def test_chunk_size_rejects_nonpositive_field_count():
    with pytest.raises(ValueError):
        chunk_size(0, 100)


def test_small_parameter_ceiling_still_writes_every_row(conn):
    rows = [_activity(seq=i) for i in range(5)]
    upsert_rows(conn, CoinActivity, rows, max_params=CoinActivity.field_count() * 2)
    assert _count(conn, "coin_activities") == 5


# --- conflict policies ---


def test_coin_info_keeps_existing_row(conn):
    insert_to_db(conn, "t", 0, 0, ReducedRange(coin_infos={"c": _coin_info()}))
    newer = _coin_info(version=5, supply="2000", name="Other")
    insert_to_db(conn, "t", 5, 5, ReducedRange(coin_infos={"c": newer}))
    rows = conn.execute(
        "SELECT transaction_version_created, supply, name FROM coin_infos"
    ).fetchall()
    assert rows == [(0, "1000", "TestCoin")]


def test_untracked_supply_persists_as_null(conn):
    insert_to_db(conn, "t", 0, 0, ReducedRange(coin_infos={"c": _coin_info(supply=None)}))
    assert conn.execute("SELECT supply FROM coin_infos").fetchone() == (None,)


def test_coin_activities_reprocessing_is_idempotent(conn):
    reduced = ReducedRange(coin_activities=[_activity(seq=0), _activity(seq=1, amount="-3")])
    insert_to_db(conn, "t", 1, 1, reduced)
    insert_to_db(conn, "t", 1, 1, reduced)
    rows = conn.execute(
        "SELECT event_sequence_number, amount, is_gas_fee FROM coin_activities ORDER BY 1"
    ).fetchall()
    assert rows == [(0, "10", 0), (1, "-3", 0)]


def test_ans_lookup_replaces_with_newer_version(conn):
    insert_to_db(conn, "t", 1, 1, ReducedRange(ans_lookups={("alice", ""): _ans(version=1)}))
    insert_to_db(conn, "t", 3, 3, ReducedRange(
        ans_lookups={("alice", ""): _ans(version=3, address="0xabc", expiration=200)}
    ))
    row = conn.execute(
        "SELECT registered_address, last_transaction_version, expiration_timestamp FROM current_ans_lookup"
    ).fetchone()
    assert row == ("0xabc", 3, "1970-01-01 00:03:20")


def test_ans_lookup_from_older_version_does_not_overwrite(conn):
    insert_to_db(conn, "t", 9, 9, ReducedRange(
        ans_lookups={("alice", ""): _ans(version=9, address="0xnew")}
    ))
    insert_to_db(conn, "t", 2, 2, ReducedRange(
        ans_lookups={("alice", ""): _ans(version=2, address="0xold")}
    ))
    row = conn.execute("SELECT registered_address, last_transaction_version FROM current_ans_lookup").fetchone()
    assert row == ("0xnew", 9)


# --- retry ---


def test_failed_batch_retried_once_with_cleaned_rows(conn, monkeypatch):
    real_impl = db_module.insert_to_db_impl
    calls = []

    def flaky(c, reduced, max_params):
        calls.append(reduced)
        if len(calls) == 1:
            raise sqlite3.OperationalError("disk I/O error")
        return real_impl(c, reduced, max_params)

    monkeypatch.setattr(db_module, "insert_to_db_impl", flaky)
    dirty = _ans(domain="bob\x00")
    insert_to_db(conn, "t", 1, 1, ReducedRange(ans_lookups={dirty.pk: dirty}))

    assert len(calls) == 2
    assert list(calls[1].ans_lookups) == [("bob", "")]
    assert conn.execute("SELECT domain FROM current_ans_lookup").fetchall() == [("bob",)]


def test_second_failure_raises_with_range_and_rolls_back(conn, monkeypatch):
    real_impl = db_module.insert_to_db_impl
    calls = []

    def always_fails(c, reduced, max_params):
        calls.append(reduced)
        real_impl(c, reduced, max_params)
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db_module, "insert_to_db_impl", always_fails)
    with pytest.raises(TransactionCommitError) as exc:
        insert_to_db(conn, "coin_processor", 5, 9, ReducedRange(coin_activities=[_activity()]))

    assert len(calls) == 2
    assert exc.value.start_version == 5
    assert exc.value.end_version == 9
    assert isinstance(exc.value.cause, sqlite3.OperationalError)
    assert _count(conn, "coin_activities") == 0
    assert not conn.in_transaction


def test_retry_and_final_failure_are_logged(conn):
    unbindable = _activity(seq=2**63)
    with capture_logs() as logs, pytest.raises(TransactionCommitError) as exc:
        insert_to_db(conn, "coin_processor", 3, 4, ReducedRange(coin_activities=[unbindable]))

    assert isinstance(exc.value.cause, OverflowError)
    assert (exc.value.start_version, exc.value.end_version) == (3, 4)
    failures = [(e["event"], e["log_level"]) for e in logs if e["event"] != "inserting_to_db"]
    assert failures == [("insert_failed_retrying_clean", "warning"), ("insert_failed", "error")]
    assert logs[-1]["start_version"] == 3
    assert _count(conn, "coin_activities") == 0
    assert not conn.in_transaction


def test_cleaning_reapplies_column_limits():
    row = _coin_info(name="N\x00" * 40).cleaned()
    assert row.name == "N" * 32


# --- meta ---


def test_meta_roundtrip(conn):
    assert get_meta(conn, "coin_processor:last_success_version", "-1") == "-1"
    set_meta(conn, "coin_processor:last_success_version", "12")
    set_meta(conn, "coin_processor:last_success_version", "20")
    assert get_meta(conn, "coin_processor:last_success_version", "-1") == "20"
