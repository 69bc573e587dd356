"""
Turn one transaction's write-set changes and events into table rows.

Unsupported resource and event types are skipped. A supported type whose
payload does not parse raises ``DecodeError`` carrying the version and the raw
payload; nothing is silently dropped.

Coin activity linkage: withdraw/deposit events carry no coin type. Every
balance change also writes the owner's ``0x1::coin::CoinStore<T>`` resource,
whose deposit/withdraw event handles are identified by the same GUID
(account address, creation number) the event carries, so the coin type is
taken from the CoinStore written in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from coin_indexer import config
from coin_indexer.aggregator import (
    AggregatorKey,
    collect_aggregator_values,
    resolve_optional_aggregator,
)
from coin_indexer.errors import DecodeError
from coin_indexer.helpers import parse_timestamp_secs, standardize_address, truncate_str
from coin_indexer.logger import get_logger
from coin_indexer.models import CoinActivity, CoinInfo, CurrentAnsLookup
from coin_indexer.resources import (
    CoinInfoResource,
    CoinStoreResource,
    EventKind,
    ResourceKind,
    event_kind,
    parse_event,
    parse_resource,
)
from coin_indexer.transactions import USER_TRANSACTION, WRITE_RESOURCE, Event, Transaction, WriteSetChange
from coin_indexer.type_tags import MoveStructTag, parse_struct_tag

logger = get_logger(__name__)

# (event account address, creation number) -> (coin type, owner address)
CoinStoreHandles = Dict[Tuple[str, int], Tuple[str, str]]


@dataclass
class DecodedTransaction:
    version: int
    coin_infos: List[CoinInfo] = field(default_factory=list)
    coin_activities: List[CoinActivity] = field(default_factory=list)
    # emitted order
    ans_lookups: List[CurrentAnsLookup] = field(default_factory=list)


def _address(value: Optional[str], version: int, type_str: str, payload: Any) -> str:
    try:
        return standardize_address(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(version, type_str, payload, f"bad address {value!r}") from e


def _coin_type_param(type_str: str, version: int, payload: Any) -> MoveStructTag:
    """Generic param T of CoinInfo<T> / CoinStore<T>."""
    try:
        tag = parse_struct_tag(type_str)
    except ValueError as e:
        raise DecodeError(version, type_str, payload, str(e)) from e
    if not tag.generic_type_params or not isinstance(tag.generic_type_params[0], MoveStructTag):
        raise DecodeError(version, type_str, payload, "coin type param is not a struct")
    return tag.generic_type_params[0]


# ---------- coin info ----------
def coin_info_from_resource(
    change: WriteSetChange,
    type_str: str,
    resource: CoinInfoResource,
    version: int,
    aggregator_values: Mapping[AggregatorKey, Decimal],
    inserted_at: datetime,
) -> CoinInfo:
    payload = change.resource_data
    coin = _coin_type_param(type_str, version, payload)
    return CoinInfo(
        coin_type=truncate_str(str(coin), config.COIN_TYPE_MAX_LEN),
        transaction_version_created=version,
        creator_address=_address(coin.address, version, type_str, payload),
        name=truncate_str(resource.name, config.COIN_NAME_MAX_LEN),
        symbol=truncate_str(resource.symbol, config.COIN_SYMBOL_MAX_LEN),
        decimals=resource.decimals,
        supply=resolve_optional_aggregator(resource.supply, aggregator_values),
        inserted_at=inserted_at,
    )


def coin_store_handles(
    change: WriteSetChange,
    type_str: str,
    resource: CoinStoreResource,
    version: int,
) -> CoinStoreHandles:
    payload = change.resource_data
    coin_type = str(_coin_type_param(type_str, version, payload))
    handles: CoinStoreHandles = {}
    for handle in (resource.deposit_events, resource.withdraw_events):
        guid = handle.guid.id
        addr = _address(guid.addr, version, type_str, payload)
        owner = _address(change.address, version, type_str, payload) if change.address else addr
        handles[(addr, guid.creation_num)] = (coin_type, owner)
    return handles


# ---------- coin activity ----------
def coin_activity_from_event(
    txn: Transaction,
    event: Event,
    kind: EventKind,
    amount: Decimal,
    coin_stores: CoinStoreHandles,
    inserted_at: datetime,
) -> CoinActivity:
    account = _address(event.guid.account_address, txn.version, event.type, event.data)
    linked = coin_stores.get((account, event.guid.creation_number))
    if linked is None:
        raise DecodeError(
            txn.version, event.type, event.data,
            f"no CoinStore written in this transaction owns event handle "
            f"({account}, {event.guid.creation_number})",
        )
    coin_type, owner = linked
    return CoinActivity(
        transaction_version=txn.version,
        event_account_address=account,
        event_creation_number=event.guid.creation_number,
        event_sequence_number=event.sequence_number,
        owner_address=owner,
        coin_type=truncate_str(coin_type, config.COIN_TYPE_MAX_LEN),
        amount=amount if kind is EventKind.DEPOSIT else -amount,
        activity_type=event.type,
        is_gas_fee=False,
        is_transaction_success=txn.success,
        entry_function_id_str=truncate_str(txn.entry_function_id, config.ENTRY_FUNCTION_MAX_LEN),
        inserted_at=inserted_at,
    )


def gas_fee_activity(txn: Transaction, inserted_at: datetime) -> Optional[CoinActivity]:
    """Gas is burnt without an event; synthesize one row for the sender."""
    if txn.type != USER_TRANSACTION or txn.gas_used is None or txn.gas_unit_price is None:
        return None
    payload = {"sender": txn.sender, "sequence_number": txn.sequence_number}
    if txn.sender is None or txn.sequence_number is None:
        raise DecodeError(txn.version, config.GAS_FEE_EVENT_TYPE, payload,
                          "user transaction without sender/sequence_number")
    sender = _address(txn.sender, txn.version, config.GAS_FEE_EVENT_TYPE, payload)
    return CoinActivity(
        transaction_version=txn.version,
        event_account_address=sender,
        event_creation_number=config.GAS_FEE_CREATION_NUMBER,
        event_sequence_number=txn.sequence_number,
        owner_address=sender,
        coin_type=config.APTOS_COIN_TYPE,
        amount=-(Decimal(txn.gas_used) * Decimal(txn.gas_unit_price)),
        activity_type=config.GAS_FEE_EVENT_TYPE,
        is_gas_fee=True,
        is_transaction_success=txn.success,
        entry_function_id_str=truncate_str(txn.entry_function_id, config.ENTRY_FUNCTION_MAX_LEN),
        inserted_at=inserted_at,
    )


# ---------- name service ----------
def ans_lookup_from_event(txn: Transaction, event: Event, kind: EventKind, parsed,
                          inserted_at: datetime) -> CurrentAnsLookup:
    try:
        expiration = parse_timestamp_secs(parsed.expiration_time_secs)
    except ValueError as e:
        raise DecodeError(txn.version, event.type, event.data, str(e)) from e
    address = parsed.new_address if kind is EventKind.SET_NAME_ADDRESS else None
    return CurrentAnsLookup(
        domain=parsed.domain_name,
        subdomain=parsed.subdomain_name or "",
        registered_address=address,
        last_transaction_version=txn.version,
        expiration_timestamp=expiration,
        inserted_at=inserted_at,
    )


def decode_transaction(
    txn: Transaction,
    inserted_at: datetime,
    ans_address: str = config.ANS_CONTRACT_ADDRESS,
) -> DecodedTransaction:
    decoded = DecodedTransaction(version=txn.version)
    aggregator_values = collect_aggregator_values(txn)
    coin_stores: CoinStoreHandles = {}

    for change in txn.changes:
        if change.type != WRITE_RESOURCE:
            continue
        type_str = change.resource_type
        kind = ResourceKind.from_type_str(type_str)
        if kind is ResourceKind.UNSUPPORTED:
            continue
        resource = parse_resource(kind, type_str, change.resource_data, txn.version)
        if kind is ResourceKind.COIN_INFO:
            decoded.coin_infos.append(
                coin_info_from_resource(change, type_str, resource, txn.version,
                                        aggregator_values, inserted_at)
            )
        elif kind is ResourceKind.COIN_STORE:
            coin_stores.update(coin_store_handles(change, type_str, resource, txn.version))

    for event in txn.events:
        kind = event_kind(event.type, ans_address)
        if kind is EventKind.UNSUPPORTED:
            continue
        parsed = parse_event(kind, event.type, event.data, txn.version)
        if kind in (EventKind.DEPOSIT, EventKind.WITHDRAW):
            decoded.coin_activities.append(
                coin_activity_from_event(txn, event, kind, parsed.amount, coin_stores, inserted_at)
            )
        else:
            decoded.ans_lookups.append(ans_lookup_from_event(txn, event, kind, parsed, inserted_at))

    gas_fee = gas_fee_activity(txn, inserted_at)
    if gas_fee is not None:
        decoded.coin_activities.append(gas_fee)

    if decoded.coin_infos or decoded.coin_activities or decoded.ans_lookups:
        logger.debug(
            "transaction_decoded",
            version=txn.version,
            coin_infos=len(decoded.coin_infos),
            coin_activities=len(decoded.coin_activities),
            ans_lookups=len(decoded.ans_lookups),
        )
    return decoded
