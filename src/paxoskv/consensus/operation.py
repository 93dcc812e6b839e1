"""
src/paxoskv/consensus/operation.py
==================================

Operations decided by consensus instances and applied by learners.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class OperationType(Enum):
    """Kinds of operation a consensus instance can decide"""
    PUT = "put"
    DELETE = "delete"
    NOOP = "noop"


@dataclass(frozen=True)
class Operation:
    """An immutable key-value operation"""

    type: OperationType
    key: str = ""
    value: Optional[str] = None

    @classmethod
    def put(cls, key: str, value: str) -> "Operation":
        return cls(OperationType.PUT, key, value)

    @classmethod
    def delete(cls, key: str) -> "Operation":
        return cls(OperationType.DELETE, key)

    @classmethod
    def noop(cls) -> "Operation":
        return cls(OperationType.NOOP)

    @property
    def is_noop(self) -> bool:
        return self.type == OperationType.NOOP

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "key": self.key,
            "value": self.value
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Operation"]:
        if not data:
            return None
        return cls(
            type=OperationType(data["type"]),
            key=data.get("key", ""),
            value=data.get("value")
        )

    def __repr__(self):
        if self.type == OperationType.PUT:
            return f"Operation(PUT {self.key}={self.value})"
        if self.type == OperationType.DELETE:
            return f"Operation(DELETE {self.key})"
        return "Operation(NOOP)"
