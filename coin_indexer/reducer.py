"""
Fold a range of decoded transactions into what gets written.

* coin infos: first occurrence in the range wins. Earlier ranges are handled
  by the table's conflict policy, not here.
* name-service lookups: last (version, event order) wins.
* coin activities: append-only, kept as is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from coin_indexer.decoder import DecodedTransaction
from coin_indexer.models import CoinActivity, CoinInfo, CurrentAnsLookup


@dataclass
class ReducedRange:
    coin_activities: List[CoinActivity] = field(default_factory=list)
    coin_infos: Dict[str, CoinInfo] = field(default_factory=dict)
    ans_lookups: Dict[Tuple[str, str], CurrentAnsLookup] = field(default_factory=dict)

    def row_counts(self) -> Dict[str, int]:
        return {
            "coin_activities": len(self.coin_activities),
            "coin_infos": len(self.coin_infos),
            "ans_lookups": len(self.ans_lookups),
        }


def reduce_transactions(decoded: Iterable[DecodedTransaction]) -> ReducedRange:
    reduced = ReducedRange()
    last_version = None
    for txn in decoded:
        if last_version is not None and txn.version <= last_version:
            raise ValueError(
                f"transactions out of order: version {txn.version} after {last_version}"
            )
        last_version = txn.version

        reduced.coin_activities.extend(txn.coin_activities)
        for coin_info in txn.coin_infos:
            reduced.coin_infos.setdefault(coin_info.coin_type, coin_info)
        for lookup in txn.ans_lookups:
            reduced.ans_lookups[lookup.pk] = lookup
    return reduced
