"""
src/paxoskv/storage/memory_store.py
===================================

In-memory key-value map holding a node's learned state.
No persistence: data is lost on restart.
"""

import logging
from typing import Dict, Any, Optional


class MemoryStore:
    """
    The local key-value map of one replica

    Only the learner writes to it; client gets read it directly, so a
    follower may serve a value one learner scan behind the leader.
    """

    def __init__(self, config: Dict[str, Any] = None):
        """
        Args:
            config: Configuration parameters
                - name: Name used for the logger (usually the node address)
        """
        self.config = config or {}
        self.logger = logging.getLogger(f"storage.memory.{self.config.get('name', 'local')}")

        self.data: Dict[str, str] = {}

        self.metrics = {
            "reads": 0,
            "writes": 0,
            "deletes": 0,
            "hits": 0,
            "misses": 0
        }

    async def get(self, key: str) -> Optional[str]:
        """Value for key, or None if the key has not been learned"""
        self.metrics["reads"] += 1
        value = self.data.get(key)
        self.metrics["hits" if value is not None else "misses"] += 1
        return value

    async def set(self, key: str, value: str) -> bool:
        self.metrics["writes"] += 1
        self.data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        """
        Remove a key

        Returns:
            False if the key was not present
        """
        self.metrics["deletes"] += 1
        if self.data.pop(key, None) is None:
            self.logger.debug(f"Delete of unknown key {key}")
            return False
        return True

    async def exists(self, key: str) -> bool:
        return key in self.data

    async def count(self) -> int:
        return len(self.data)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents"""
        return dict(self.data)

    async def get_metrics(self) -> Dict[str, Any]:
        lookups = self.metrics["hits"] + self.metrics["misses"]
        return dict(
            self.metrics,
            size=len(self.data),
            hit_ratio=self.metrics["hits"] / lookups if lookups else 0
        )
