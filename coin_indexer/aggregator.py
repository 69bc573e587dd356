"""
Resolve on-chain optional-aggregator counters (coin supply) to plain decimals.

A counter is tracked either inline as an integer or behind an aggregator,
whose live value sits in a table item addressed by (handle, key). The inline
integer always wins; the aggregator is consulted only when it is absent.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional, Tuple

from coin_indexer.helpers import standardize_address
from coin_indexer.resources import OptionalAggregator
from coin_indexer.transactions import WRITE_TABLE_ITEM, Transaction

AggregatorKey = Tuple[str, str]

AGGREGATOR_VALUE_TYPE = "u128"


def _norm(s: str) -> str:
    try:
        return standardize_address(s)
    except ValueError:
        return s.lower()


def _key(handle: str, key: str) -> AggregatorKey:
    return _norm(handle), _norm(key)


def resolve_optional_aggregator(
    supply: Optional[OptionalAggregator],
    aggregator_values: Optional[Mapping[AggregatorKey, Decimal]] = None,
) -> Optional[Decimal]:
    if supply is None:
        return None
    if supply.integer is not None:
        return supply.integer.value
    if supply.aggregator is not None and aggregator_values:
        agg = supply.aggregator
        return aggregator_values.get(_key(agg.handle, agg.key))
    return None


def resolve_limit(supply: Optional[OptionalAggregator]) -> Optional[Decimal]:
    """Supply cap, same precedence as the value."""
    if supply is None:
        return None
    if supply.integer is not None and supply.integer.limit is not None:
        return supply.integer.limit
    if supply.aggregator is not None:
        return supply.aggregator.limit
    return None


def collect_aggregator_values(txn: Transaction) -> Dict[AggregatorKey, Decimal]:
    """Aggregator values written by this transaction, keyed by (table handle, item key)."""
    values: Dict[AggregatorKey, Decimal] = {}
    for change in txn.changes:
        if change.type != WRITE_TABLE_ITEM or not change.data or not change.handle:
            continue
        if change.data.get("value_type") != AGGREGATOR_VALUE_TYPE:
            continue
        key, value = change.data.get("key"), change.data.get("value")
        if not isinstance(key, str) or value is None:
            continue
        try:
            values[_key(change.handle, key)] = Decimal(str(value))
        except (InvalidOperation, ValueError):
            # not an aggregator entry; some other u128 table
            continue
    return values
