"""
Waiter Leaderboards

Two-pointer selection of the best and worst waiters from a sequence that is
already sorted best-first.
"""

from dataclasses import dataclass, field
from typing import Generic, List, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class LeaderboardEntry(Generic[T]):
    """One slot of a leaderboard"""
    position: int  # 1-based
    item: T


@dataclass
class Leaderboard(Generic[T]):
    """Best and worst slots of one ranking axis"""
    best: List[LeaderboardEntry[T]] = field(default_factory=list)
    worst: List[LeaderboardEntry[T]] = field(default_factory=list)


def select_leaderboards(sorted_desc: Sequence[T], size: int = 3) -> Leaderboard[T]:
    """
    Select up to ``size`` best and worst entries.

    The front of the sequence feeds the best side and the back feeds the
    worst side, one slot at a time. When a single element is left for a
    slot it goes on both sides. A one-element sequence fills every slot of
    both sides with that element.

    Args:
        sorted_desc: Items sorted from best to worst
        size: Slots per side

    Returns:
        Leaderboard with ``best`` ordered best-first and ``worst`` ordered
        worst-first
    """
    board: Leaderboard[T] = Leaderboard()

    if len(sorted_desc) == 1:
        only = sorted_desc[0]
        for position in range(1, size + 1):
            board.best.append(LeaderboardEntry(position, only))
            board.worst.append(LeaderboardEntry(position, only))
        return board

    left, right = 0, len(sorted_desc) - 1
    while left <= right and len(board.best) < size:
        position = len(board.best) + 1
        board.best.append(LeaderboardEntry(position, sorted_desc[left]))
        board.worst.append(LeaderboardEntry(position, sorted_desc[right]))
        left += 1
        right -= 1

    return board
