"""
Move type tags, e.g. ``0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>``.

Only struct tags are modelled; primitive and vector params are kept as text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union


@dataclass(frozen=True)
class MoveStructTag:
    address: str
    module: str
    name: str
    generic_type_params: Tuple[Union["MoveStructTag", str], ...] = field(default=())

    @property
    def base(self) -> str:
        """Tag without generic params, the key used for type dispatch."""
        return f"{self.address}::{self.module}::{self.name}"

    def __str__(self) -> str:
        if not self.generic_type_params:
            return self.base
        params = ", ".join(str(p) for p in self.generic_type_params)
        return f"{self.base}<{params}>"


def parse_type_tag(type_str: str) -> Union[MoveStructTag, str]:
    """Parse a fully-qualified type string. Raises ValueError on malformed input."""
    tag, end = _parse(type_str, 0)
    if type_str[end:].strip():
        raise ValueError(f"trailing characters in type tag {type_str!r}")
    return tag


def parse_struct_tag(type_str: str) -> MoveStructTag:
    tag = parse_type_tag(type_str)
    if not isinstance(tag, MoveStructTag):
        raise ValueError(f"{type_str!r} is not a struct tag")
    return tag


def _parse(s: str, i: int):
    j = i
    while j < len(s) and s[j] not in "<>,":
        j += 1
    head = s[i:j].strip()
    if not head:
        raise ValueError(f"empty type at offset {i} in {s!r}")

    params = []
    if j < len(s) and s[j] == "<":
        j += 1
        while True:
            param, j = _parse(s, j)
            params.append(param)
            while j < len(s) and s[j].isspace():
                j += 1
            if j >= len(s):
                raise ValueError(f"unterminated generic params in {s!r}")
            if s[j] == ",":
                j += 1
                continue
            if s[j] == ">":
                j += 1
                break
            raise ValueError(f"unexpected {s[j]!r} at offset {j} in {s!r}")

    parts = head.split("::")
    if len(parts) == 3 and all(parts):
        return MoveStructTag(parts[0], parts[1], parts[2], tuple(params)), j
    if len(parts) != 1:
        raise ValueError(f"malformed struct tag {head!r}")
    if params:
        return f"{head}<{', '.join(str(p) for p in params)}>", j
    return head, j
