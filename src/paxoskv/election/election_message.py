"""
src/paxoskv/election/election_message.py
========================================

Token passed around the ring during leader election.
"""

from typing import Any, Dict, Iterable, Optional, Set


class ElectionMessage:
    """
    Election token

    Carries the address of the node that started the round and every
    candidate address seen so far. When it returns to its origin the
    lexicographically smallest candidate becomes leader.
    """

    def __init__(self, origin: str, current_leader: Optional[str] = None,
                 candidates: Iterable[str] = ()):
        self.origin = origin
        self.candidates: Set[str] = set(candidates)
        if current_leader is not None:
            self.candidates.add(current_leader)

    def add_candidate(self, address: str):
        self.candidates.add(address)

    def back_to_origin(self, address: str) -> bool:
        return self.origin == address

    def select_leader(self) -> str:
        return min(self.candidates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "candidates": sorted(self.candidates)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElectionMessage":
        return cls(origin=data["origin"], candidates=data.get("candidates", []))

    def __repr__(self):
        return f"ElectionMessage(origin={self.origin}, candidates={sorted(self.candidates)})"
