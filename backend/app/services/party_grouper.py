"""Shipping party grouper.

Turns the loosely-structured order submission (a list of party objects and
a flat list of items) into parties that each own their items:

    parties = [{"receiver_name": "A", ...}, {"receiver_name": "B", ...}]
    items   = [{"party_index": 1, "item_index": 0, "total_number": 5}, ...]

        → [GroupedParty(index=0, items=[]), GroupedParty(index=1, items=[...])]

Items are matched to parties by their typed `party_index` / `item_index`.
Older clients only send `item_ref` ("REF-<party>-<item>[-suffix]"), which
is parsed as a fallback.  An item that cannot be placed goes to party 0
with a warning instead of failing the request.

When the submission's `sender_type` is "receiver", the owner is the
receiving party and the listed parties are senders: sender_* and
receiver_* keys are swapped so callers always see receiver-shaped parties
and a sender-shaped owner.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from app.models.order import SenderType

logger = logging.getLogger(__name__)

ITEM_REF_PATTERN = re.compile(r"^REF-(\d+)-(\d+)(?:-.*)?$", re.IGNORECASE)


@dataclass
class GroupedItem:
    party_index: int
    item_index: int
    fields: dict[str, Any]

    @property
    def item_ref(self) -> str:
        return format_item_ref(self.party_index, self.item_index)

    @property
    def quantity(self) -> int:
        return _as_int(self.fields.get("total_number"))

    @property
    def weight(self) -> float:
        return _as_float(self.fields.get("weight"))


@dataclass
class GroupedParty:
    index: int
    fields: dict[str, Any]
    items: list[GroupedItem] = field(default_factory=list)

    @property
    def total_number(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_weight(self) -> float:
        return round(sum(item.weight for item in self.items), 3)


# ── Helpers ──────────────────────────────────────────────────

def format_item_ref(party_index: int, item_index: int) -> str:
    return f"REF-{party_index}-{item_index}"


def parse_item_ref(item_ref: Any) -> tuple[int, int] | None:
    """`REF-2-0-x` → (2, 0); anything else → None."""
    if not isinstance(item_ref, str):
        return None
    match = ITEM_REF_PATTERN.match(item_ref.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_index(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        index = int(value)
    except (TypeError, ValueError):
        return None
    return index if index >= 0 else None


def swap_roles(record: dict[str, Any]) -> dict[str, Any]:
    """Exchange sender_* and receiver_* keys; other keys are kept as is."""
    swapped = {}
    for key, value in record.items():
        if key.startswith("sender_"):
            swapped["receiver_" + key[len("sender_"):]] = value
        elif key.startswith("receiver_"):
            swapped["sender_" + key[len("receiver_"):]] = value
        else:
            swapped[key] = value
    return swapped


def normalize_owner(owner: dict[str, Any] | None, sender_type: str) -> dict[str, Any]:
    """Sender-shaped owner record regardless of `sender_type`."""
    owner = dict(owner or {})
    if sender_type == SenderType.RECEIVER.value:
        return swap_roles(owner)
    return owner


def resolve_item_position(item: dict[str, Any]) -> tuple[int, int | None] | None:
    """(party_index, item_index) from typed fields, else from item_ref."""
    party_index = _as_index(item.get("party_index"))
    if party_index is not None:
        return party_index, _as_index(item.get("item_index"))
    return parse_item_ref(item.get("item_ref"))


# ── Grouping ─────────────────────────────────────────────────

def group_parties(
    parties: list[dict[str, Any]],
    items: list[dict[str, Any]],
    sender_type: str = SenderType.SENDER.value,
) -> list[GroupedParty]:
    """Group flat items under their parties.

    Pure and deterministic: the same input always yields the same
    partition.  Parties keep submission order; each party's items are
    ordered by item index, ties by submission order, with items that had
    no usable index (or were moved to party 0) after them in submission
    order.  Items are then renumbered 0..n-1 so indexes are dense.
    """
    swap = sender_type == SenderType.RECEIVER.value
    grouped = [
        GroupedParty(index=i, fields=swap_roles(p) if swap else dict(p))
        for i, p in enumerate(parties)
    ]

    buckets: dict[int, list[tuple[tuple[int, int], int, dict]]] = {}
    for position, raw in enumerate(items):
        resolved = resolve_item_position(raw)
        if resolved is None:
            logger.warning(
                f"Item {position} has no usable party reference "
                f"(item_ref={raw.get('item_ref')!r}); assigning to party 0"
            )
            party_index, item_index = 0, None
        else:
            party_index, item_index = resolved

        if party_index >= len(grouped):
            logger.warning(
                f"Item {position} references party {party_index} but only "
                f"{len(grouped)} parties were submitted; assigning to party 0"
            )
            party_index = 0
            item_index = None

        # Indexed items first, fallbacks after them in submission order
        order_key = (0, item_index) if item_index is not None else (1, 0)
        buckets.setdefault(party_index, []).append((order_key, position, raw))

    if buckets and not grouped:
        # Items without any party still need a home
        grouped.append(GroupedParty(index=0, fields={}))

    for party_index, entries in buckets.items():
        entries.sort(key=lambda e: (e[0], e[1]))
        party = grouped[party_index]
        for seq, (_, _, raw) in enumerate(entries):
            fields = {
                k: v for k, v in raw.items()
                if k not in ("party_index", "item_index", "item_ref")
            }
            party.items.append(GroupedItem(party_index=party_index, item_index=seq, fields=fields))

    return grouped


def flatten_parties(grouped: list[GroupedParty]) -> tuple[list[dict], list[dict]]:
    """Inverse of `group_parties`: parties plus a flat item list with typed indexes."""
    parties = [dict(p.fields) for p in grouped]
    items = [
        {**item.fields, "party_index": item.party_index, "item_index": item.item_index}
        for p in grouped
        for item in p.items
    ]
    return parties, items
