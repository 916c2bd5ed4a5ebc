"""Participation ledger: who currently occupies a seat in an event.

The ledger keeps the member set and the cached participant counter in
lockstep. It is immutable; ``add`` and ``remove`` return a new ledger.
"""

from dataclasses import dataclass, field
from typing import Self

from participation.domain.errors import AlreadyJoinedError, NotAParticipantError
from participation.domain.value_objects import UserId


@dataclass(frozen=True)
class ParticipationLedger:
    """Set of participants plus its cached cardinality."""

    members: frozenset[UserId] = field(default_factory=frozenset)
    current: int = 0

    def __post_init__(self) -> None:
        if self.current != len(self.members):
            raise ValueError(
                f"Participant counter {self.current} diverges from "
                f"{len(self.members)} members"
            )

    @classmethod
    def of(cls, members: frozenset[UserId] | set[UserId] | list[UserId]) -> Self:
        unique = frozenset(members)
        return cls(members=unique, current=len(unique))

    def contains(self, user_id: UserId) -> bool:
        return user_id in self.members

    def count(self) -> int:
        return self.current

    def add(self, user_id: UserId) -> Self:
        """Return a ledger with ``user_id`` seated.

        Raises:
            AlreadyJoinedError: If the user already holds a seat.
        """
        if self.contains(user_id):
            raise AlreadyJoinedError()
        return type(self)(members=self.members | {user_id}, current=self.current + 1)

    def remove(self, user_id: UserId) -> Self:
        """Return a ledger without ``user_id``.

        Raises:
            NotAParticipantError: If the user holds no seat.
        """
        if not self.contains(user_id):
            raise NotAParticipantError()
        return type(self)(members=self.members - {user_id}, current=self.current - 1)

    def __iter__(self):
        return iter(sorted(self.members))

    def __len__(self) -> int:
        return self.current
