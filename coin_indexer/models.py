"""
Rows written to the three derived tables.

Each row class knows its table, primary key and per-column length limits so
the upsert engine can build statements and chunk sizes generically.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Tuple

from coin_indexer import config
from coin_indexer.helpers import clean_str, truncate_str


def _to_db(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, bool):
        return int(value)
    return value


class Row:
    __tablename__: ClassVar[str]
    primary_key: ClassVar[Tuple[str, ...]]
    max_lengths: ClassVar[Dict[str, int]] = {}

    @classmethod
    def columns(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def field_count(cls) -> int:
        return len(fields(cls))

    @property
    def pk(self) -> tuple:
        return tuple(getattr(self, c) for c in self.primary_key)

    def to_params(self) -> tuple:
        return tuple(_to_db(getattr(self, c)) for c in self.columns())

    def cleaned(self):
        """Copy with NUL characters stripped and column limits re-applied."""
        changes = {}
        for name in self.columns():
            value = getattr(self, name)
            if not isinstance(value, str):
                continue
            value = clean_str(value)
            if name in self.max_lengths:
                value = truncate_str(value, self.max_lengths[name])
            changes[name] = value
        return replace(self, **changes)


@dataclass(frozen=True)
class CoinInfo(Row):
    __tablename__: ClassVar[str] = "coin_infos"
    primary_key: ClassVar[Tuple[str, ...]] = ("coin_type",)
    max_lengths: ClassVar[Dict[str, int]] = {
        "coin_type": config.COIN_TYPE_MAX_LEN,
        "name": config.COIN_NAME_MAX_LEN,
        "symbol": config.COIN_SYMBOL_MAX_LEN,
    }

    coin_type: str
    transaction_version_created: int
    creator_address: str
    name: str
    symbol: str
    decimals: int
    # None when the chain does not track supply
    supply: Optional[Decimal]
    inserted_at: datetime


@dataclass(frozen=True)
class CoinActivity(Row):
    __tablename__: ClassVar[str] = "coin_activities"
    primary_key: ClassVar[Tuple[str, ...]] = (
        "transaction_version",
        "event_account_address",
        "event_creation_number",
        "event_sequence_number",
    )
    max_lengths: ClassVar[Dict[str, int]] = {
        "coin_type": config.COIN_TYPE_MAX_LEN,
        "entry_function_id_str": config.ENTRY_FUNCTION_MAX_LEN,
    }

    transaction_version: int
    event_account_address: str
    event_creation_number: int
    event_sequence_number: int
    owner_address: str
    coin_type: str
    amount: Decimal
    activity_type: str
    is_gas_fee: bool
    is_transaction_success: bool
    entry_function_id_str: Optional[str]
    inserted_at: datetime


@dataclass(frozen=True)
class CurrentAnsLookup(Row):
    __tablename__: ClassVar[str] = "current_ans_lookup"
    primary_key: ClassVar[Tuple[str, ...]] = ("domain", "subdomain")

    domain: str
    # "" for a bare domain
    subdomain: str
    registered_address: Optional[str]
    last_transaction_version: int
    expiration_timestamp: datetime
    inserted_at: datetime
