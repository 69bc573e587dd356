from datetime import datetime, timezone
from typing import Any, Optional

from web3.types import HexBytes

# ---------------- helpers ----------------
def truncate_str(s, max_len: int):
    if s is None: return None
    return s[:max_len]

def clean_str(s):
    # text columns choke on embedded NUL and lone surrogates
    if s is None: return None
    return s.replace("\x00", "").encode("utf-8", "replace").decode("utf-8")

def standardize_address(addr) -> Optional[str]:
    """
    Accept short ("0x1") or full addresses, return 0x + 64 lowercase hex chars.
    """
    if addr is None: return None
    h = HexBytes(addr).hex()
    h = h[2:] if h.startswith("0x") else h
    return "0x" + h.lower().rjust(64, "0")

def unwrap_move_option(value: Any) -> Any:
    """
    Move options arrive as {"vec": []} or {"vec": [x]}; collapse to None / x.
    Anything that is not a vec envelope is returned untouched.
    """
    if isinstance(value, dict) and set(value.keys()) == {"vec"}:
        items = value["vec"]
        if not isinstance(items, list):
            raise ValueError(f"option vec must be a list, got {type(items).__name__}")
        if len(items) > 1:
            raise ValueError(f"option vec holds {len(items)} elements")
        return items[0] if items else None
    return value

def parse_timestamp_secs(secs) -> datetime:
    """Seconds since epoch -> naive UTC datetime. Raises ValueError when out of range."""
    try:
        return datetime.fromtimestamp(int(secs), tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError) as e:
        raise ValueError(f"timestamp {secs} out of range") from e
