# src/poaledger/ledger/layout.py
from __future__ import annotations

"""Positional storage layouts shared between proxy and implementation.

Proxy storage is a flat list of slots. An implementation finds a field only
through the slot index its own layout assigns to it, so two implementations
agree on data only if they agree on (name, kind) for every slot the older one
used. A replacement layout may append slots; it may never reorder, rename or
retype an existing one.
"""

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, MutableMapping, Sequence, Tuple

from poaledger.runtime.errors import StorageLayoutViolation

Json = Dict[str, Any]

_DEFAULTS: Dict[str, Any] = {
    "uint": 0,
    "bool": False,
    "str": "",
    "address": "",
    "map_uint": {},
    "map_map_uint": {},
    "map_bool": {},
}


@dataclass(frozen=True)
class StorageField:
    name: str
    kind: str

    def __post_init__(self) -> None:
        if self.kind not in _DEFAULTS:
            raise ValueError(f"unknown storage kind: {self.kind!r}")

    def default(self) -> Any:
        return copy.deepcopy(_DEFAULTS[self.kind])


Layout = Tuple[StorageField, ...]


def _canon_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def encode_slot(value: Any) -> bytes:
    return _canon_json(value).encode("utf-8")


def encode_slots(slots: Sequence[Any]) -> List[bytes]:
    """Canonical bytes of every slot, in slot order."""
    return [encode_slot(v) for v in slots]


def encode_layout(layout: Sequence[StorageField]) -> List[bytes]:
    """Canonical bytes of every slot declaration, in slot order."""
    return [encode_slot([f.name, f.kind]) for f in layout]


def diff_layouts(old: Sequence[StorageField], new: Sequence[StorageField]) -> List[Json]:
    """Byte-level comparison of two layouts; returns every violation found."""
    out: List[Json] = []
    old_b = encode_layout(old)
    new_b = encode_layout(new)

    if len(new_b) < len(old_b):
        out.append({"slot": len(new_b), "violation": "slots_removed", "old_len": len(old_b), "new_len": len(new_b)})

    for i, (a, b) in enumerate(zip(old_b, new_b)):
        if a == b:
            continue
        fo, fn = old[i], new[i]
        if fo.name != fn.name:
            out.append({"slot": i, "violation": "name_changed", "old": fo.name, "new": fn.name})
        if fo.kind != fn.kind:
            out.append({"slot": i, "violation": "kind_changed", "field": fo.name, "old": fo.kind, "new": fn.kind})

    names = [f.name for f in new]
    dupes = sorted({n for n in names if names.count(n) > 1})
    for n in dupes:
        out.append({"violation": "duplicate_name", "field": n})
    return out


def check_append_only(old: Sequence[StorageField], new: Sequence[StorageField]) -> None:
    problems = diff_layouts(old, new)
    if problems:
        raise StorageLayoutViolation("layout_not_append_only", {"violations": problems})


def extend_slots(slots: List[Any], layout: Sequence[StorageField]) -> int:
    """Append default values for every slot `layout` declares past the end."""
    added = 0
    while len(slots) < len(layout):
        slots.append(layout[len(slots)].default())
        added += 1
    return added


def _check_kind(field: StorageField, value: Any) -> None:
    k = field.kind
    ok = True
    if k == "uint":
        ok = isinstance(value, int) and not isinstance(value, bool) and value >= 0
    elif k == "bool":
        ok = isinstance(value, bool)
    elif k in {"str", "address"}:
        ok = isinstance(value, str)
    else:
        ok = isinstance(value, dict)
    if not ok:
        raise StorageLayoutViolation("slot_kind_mismatch", {"field": field.name, "kind": k, "value": repr(value)})


class StorageView(MutableMapping[str, Any]):
    """Named access to positional proxy slots through one layout.

    Reads past the materialized end pad the slot list with defaults, so map
    slots can be mutated in place. Slots are never deleted.
    """

    def __init__(self, slots: List[Any], layout: Sequence[StorageField]) -> None:
        self._slots = slots
        self._layout: Layout = tuple(layout)
        self._index: Dict[str, int] = {f.name: i for i, f in enumerate(self._layout)}

    @property
    def layout(self) -> Layout:
        return self._layout

    @property
    def slots(self) -> List[Any]:
        return self._slots

    def _slot(self, key: str) -> int:
        try:
            return self._index[key]
        except KeyError:
            raise KeyError(key) from None

    def __getitem__(self, key: str) -> Any:
        i = self._slot(key)
        if i >= len(self._slots):
            extend_slots(self._slots, self._layout[: i + 1])
        return self._slots[i]

    def __setitem__(self, key: str, value: Any) -> None:
        i = self._slot(key)
        _check_kind(self._layout[i], value)
        if i >= len(self._slots):
            extend_slots(self._slots, self._layout[: i + 1])
        self._slots[i] = value

    def __delitem__(self, key: str) -> None:
        raise TypeError("storage slots cannot be deleted")

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._layout)

    def to_dict(self) -> Json:
        return {k: copy.deepcopy(self[k]) for k in self._index}


__all__ = [
    "Layout",
    "StorageField",
    "StorageView",
    "check_append_only",
    "diff_layouts",
    "encode_layout",
    "encode_slot",
    "encode_slots",
    "extend_slots",
]
