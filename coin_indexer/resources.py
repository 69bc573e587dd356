"""
On-chain bodies the decoder understands, and the dispatch from type tag to body.

Dispatch is an explicit allow-list: ``ResourceKind.from_type_str`` and
``event_kind`` map every tag we support to a variant and everything else to
``UNSUPPORTED``. Asking ``parse_resource`` / ``parse_event`` for an
unsupported variant is a caller bug and raises ``UnsupportedTypeError``.
Move ``vec`` options are collapsed to ``None`` / value here so that nothing
past this module ever sees the list encoding.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from coin_indexer.errors import DecodeError, UnsupportedTypeError
from coin_indexer.helpers import unwrap_move_option


class ResourceKind(Enum):
    COIN_INFO = "0x1::coin::CoinInfo"
    COIN_STORE = "0x1::coin::CoinStore"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_type_str(cls, type_str: Optional[str]) -> "ResourceKind":
        if not type_str:
            return cls.UNSUPPORTED
        base = type_str.split("<", 1)[0].strip()
        for kind in cls:
            if kind is not cls.UNSUPPORTED and kind.value == base:
                return kind
        return cls.UNSUPPORTED


class EventKind(Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    REGISTER_NAME = "register_name"
    SET_NAME_ADDRESS = "set_name_address"
    UNSUPPORTED = "unsupported"


COIN_DEPOSIT_EVENT = "0x1::coin::DepositEvent"
COIN_WITHDRAW_EVENT = "0x1::coin::WithdrawEvent"


def event_kind(type_str: str, ans_address: str) -> EventKind:
    """Exact string match; the name-service events live under ``{ans_address}::events``."""
    table = {
        COIN_DEPOSIT_EVENT: EventKind.DEPOSIT,
        COIN_WITHDRAW_EVENT: EventKind.WITHDRAW,
        f"{ans_address}::events::RegisterNameEventV1": EventKind.REGISTER_NAME,
        f"{ans_address}::events::SetNameAddressEventV1": EventKind.SET_NAME_ADDRESS,
    }
    return table.get(type_str, EventKind.UNSUPPORTED)


def is_resource_supported(type_str: Optional[str]) -> bool:
    return ResourceKind.from_type_str(type_str) is not ResourceKind.UNSUPPORTED


# ---------- coin supply ----------
class IntegerResource(BaseModel):
    value: Decimal
    limit: Optional[Decimal] = None


class AggregatorResource(BaseModel):
    handle: str
    key: str
    limit: Optional[Decimal] = None


class OptionalAggregator(BaseModel):
    """A counter tracked either inline (``integer``) or behind an aggregator table entry."""

    aggregator: Optional[AggregatorResource]
    integer: Optional[IntegerResource]

    @field_validator("aggregator", "integer", mode="before")
    @classmethod
    def _unwrap(cls, v):
        return unwrap_move_option(v)


class CoinInfoResource(BaseModel):
    name: str
    symbol: str
    decimals: int
    supply: Optional[OptionalAggregator]

    @field_validator("supply", mode="before")
    @classmethod
    def _unwrap_supply(cls, v):
        return unwrap_move_option(v)


# ---------- coin store ----------
class GuidId(BaseModel):
    addr: str
    creation_num: int


class HandleGuid(BaseModel):
    id: GuidId


class EventHandle(BaseModel):
    counter: int
    guid: HandleGuid


class CoinValue(BaseModel):
    value: Decimal


class CoinStoreResource(BaseModel):
    coin: CoinValue
    frozen: bool = False
    deposit_events: EventHandle
    withdraw_events: EventHandle


# ---------- events ----------
class CoinEventData(BaseModel):
    amount: Decimal = Field(ge=0)


class RegisterNameEventV1(BaseModel):
    domain_name: str
    subdomain_name: Optional[str]
    expiration_time_secs: Decimal

    @field_validator("subdomain_name", mode="before")
    @classmethod
    def _unwrap_subdomain(cls, v):
        return unwrap_move_option(v)


class SetNameAddressEventV1(RegisterNameEventV1):
    new_address: Optional[str]

    @field_validator("new_address", mode="before")
    @classmethod
    def _unwrap_address(cls, v):
        return unwrap_move_option(v)


_RESOURCE_MODELS = {
    ResourceKind.COIN_INFO: CoinInfoResource,
    ResourceKind.COIN_STORE: CoinStoreResource,
}

_EVENT_MODELS = {
    EventKind.DEPOSIT: CoinEventData,
    EventKind.WITHDRAW: CoinEventData,
    EventKind.REGISTER_NAME: RegisterNameEventV1,
    EventKind.SET_NAME_ADDRESS: SetNameAddressEventV1,
}


def _validate(model, type_str: str, data: Any, version: int):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(version, type_str, data, str(e)) from e


def parse_resource(kind: ResourceKind, type_str: str, data: Any, version: int):
    model = _RESOURCE_MODELS.get(kind)
    if model is None:
        raise UnsupportedTypeError(type_str, version)
    return _validate(model, type_str, data, version)


def parse_event(kind: EventKind, type_str: str, data: Any, version: int):
    model = _EVENT_MODELS.get(kind)
    if model is None:
        raise UnsupportedTypeError(type_str, version)
    return _validate(model, type_str, data, version)
