from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Sequence

from coin_indexer import config
from coin_indexer.db import insert_to_db
from coin_indexer.decoder import decode_transaction
from coin_indexer.errors import (
    DecodeError,
    TransactionDecodeError,
    UnsupportedTypeError,
)
from coin_indexer.logger import get_logger
from coin_indexer.reducer import reduce_transactions
from coin_indexer.transactions import Transaction

logger = get_logger(__name__)

NAME = "coin_processor"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Stage(Enum):
    IDLE = "idle"
    DECODING = "decoding"
    REDUCING = "reducing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessingResult:
    name: str
    start_version: int
    end_version: int


class CoinTransactionProcessor:
    """
    Decode -> reduce -> persist one contiguous version range.

    One processor per connection; concurrent ranges use separate processors.
    ``clock`` stamps ``inserted_at`` once per range so decoding stays deterministic.
    """

    name = NAME

    def __init__(self, conn, clock: Callable[[], datetime] = utc_now,
                 max_params: int = config.MAX_QUERY_PARAMETERS,
                 ans_address: str = config.ANS_CONTRACT_ADDRESS):
        self.conn = conn
        self.clock = clock
        self.max_params = max_params
        self.ans_address = ans_address
        self.stage = Stage.IDLE

    def __repr__(self):
        return f"CoinTransactionProcessor(name={self.name!r}, stage={self.stage.value})"

    def _enter(self, stage: Stage, start_version: int, end_version: int):
        self.stage = stage
        logger.info("processor_stage", name=self.name, stage=stage.value,
                    start_version=start_version, end_version=end_version)

    def process_transactions(self, transactions: Sequence[Transaction],
                             start_version: int, end_version: int) -> ProcessingResult:
        inserted_at = self.clock()

        self._enter(Stage.DECODING, start_version, end_version)
        try:
            decoded = []
            for txn in transactions:
                if not start_version <= txn.version <= end_version:
                    raise ValueError(
                        f"version {txn.version} outside range {start_version}..{end_version}"
                    )
                decoded.append(decode_transaction(txn, inserted_at, self.ans_address))
            self._enter(Stage.REDUCING, start_version, end_version)
            reduced = reduce_transactions(decoded)
        except UnsupportedTypeError:
            self._enter(Stage.FAILED, start_version, end_version)
            raise
        except (DecodeError, ValueError) as e:
            self._enter(Stage.FAILED, start_version, end_version)
            logger.error("range_decode_failed", name=self.name, start_version=start_version,
                         end_version=end_version, error=str(e))
            raise TransactionDecodeError(self.name, start_version, end_version, e) from e
        except Exception:
            self._enter(Stage.FAILED, start_version, end_version)
            raise

        self._enter(Stage.PERSISTING, start_version, end_version)
        try:
            insert_to_db(self.conn, self.name, start_version, end_version, reduced, self.max_params)
        except Exception:
            self._enter(Stage.FAILED, start_version, end_version)
            raise

        self._enter(Stage.DONE, start_version, end_version)
        logger.info("range_processed", name=self.name, start_version=start_version,
                    end_version=end_version, transactions=len(transactions), **reduced.row_counts())
        return ProcessingResult(self.name, start_version, end_version)
