"""
Liquidity positions and dense position lists.

A PositionList keeps every position custodied by one owner in slots
``[0, head)``. Slots at or beyond ``head`` may hold stale records from earlier
removals and are never read. Slot order carries no meaning: removal backfills
the hole with the last record, so indices are not stable identities. Use
``Position.id`` for that.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from locker.core.addressing import derive_position_address, derive_position_list_address
from locker.core.locker_exceptions import InvalidIndexError


@dataclass
class Position:
    """
    Liquidity position within a tick range.

    Created and destroyed only by the market. The locker relocates positions
    between lists and rewrites ``owner``; it never touches the other fields.
    """

    id: int
    owner: str
    pool: str

    # Range (in ticks)
    lower_tick_index: int
    upper_tick_index: int

    liquidity: int = 0

    # Fee tracking
    fee_growth_inside_x: int = 0
    fee_growth_inside_y: int = 0
    tokens_owed_x: int = 0
    tokens_owed_y: int = 0

    created_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(**data)


@dataclass
class PositionList:
    """Dense array of positions owned by a single authority."""

    owner: str
    head: int = 0
    payer: str = ""
    _slots: List[Optional[Position]] = field(default_factory=list, repr=False)

    @property
    def address(self) -> str:
        return derive_position_list_address(self.owner)

    def slot_address(self, index: int) -> str:
        return derive_position_address(self.owner, index)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.head:
            raise InvalidIndexError(index, self.head, owner=self.owner)

    def get(self, index: int) -> Position:
        self._check_index(index)
        return self._slots[index]

    def positions(self) -> List[Position]:
        """Occupied slots in slot order."""
        return list(self._slots[: self.head])

    def __len__(self) -> int:
        return self.head

    def append(self, record: Position) -> int:
        """Write ``record`` at ``head`` and return the slot it landed in."""
        index = self.head
        if index < len(self._slots):
            self._slots[index] = record
        else:
            self._slots.append(record)
        self.head += 1
        return index

    def remove_at(self, index: int) -> Position:
        """
        Swap-remove the record at ``index``.

        The removed record is read before anything is written. If it was not
        the last one, the record at ``head - 1`` is moved into its slot. The
        last slot is never copied onto itself.

        Returns:
            The record originally at ``index``, not the one that backfilled it.

        Raises:
            InvalidIndexError: If index is outside [0, head)
        """
        self._check_index(index)
        removed = self._slots[index]
        last = self.head - 1
        if index != last:
            self._slots[index] = self._slots[last]
        self.head = last
        return removed

    def index_of(self, position_id: int) -> int:
        """Current slot of ``position_id``, or -1 if this list does not hold it."""
        for index, position in enumerate(self._slots[: self.head]):
            if position.id == position_id:
                return index
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "head": self.head,
            "payer": self.payer,
            "positions": [p.to_dict() for p in self.positions()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PositionList":
        positions = [Position.from_dict(p) for p in data.get("positions", [])]
        head = int(data.get("head", len(positions)))
        if head != len(positions):
            raise ValueError(
                f"Position list {data.get('owner')} head {head} "
                f"does not match {len(positions)} stored positions"
            )
        return cls(owner=data["owner"], head=head, payer=data.get("payer", ""), _slots=positions)
