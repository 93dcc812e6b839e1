"""
src/paxoskv/consensus/learner.py
================================

Learner role of the Paxos protocol.
Applies operations accepted by the local acceptor to the node's
key-value map, once per consensus instance.
"""

import asyncio
import logging
from typing import Dict, Any, Set

from paxoskv.consensus.acceptor import Acceptor
from paxoskv.consensus.operation import Operation, OperationType
from paxoskv.storage.memory_store import MemoryStore


class Learner:
    """
    Paxos learner

    Invoked on a schedule by the learner worker. An instance is applied as
    soon as the local acceptor has accepted any proposal for it; majority
    acceptance across nodes is not confirmed first.
    """

    def __init__(self, node_id: str, acceptor: Acceptor, store: MemoryStore):
        self.node_id = node_id
        self.acceptor = acceptor
        self.store = store

        self.logger = logging.getLogger(f"paxos.learner.{node_id}")

        self.applied: Set[str] = set()
        self._scan_lock = asyncio.Lock()

        self.stats = {
            "scans": 0,
            "applied": 0,
            "noops": 0
        }

    async def learn(self) -> int:
        """
        Scan all consensus instances and apply newly accepted operations

        Returns:
            Number of operations applied to the store in this scan
        """
        async with self._scan_lock:
            self.stats["scans"] += 1
            applied_now = 0

            # Reads accepted state without taking the per-instance locks
            for instance_id, instance in self.acceptor.snapshot().items():
                if instance_id in self.applied or instance.accepted_number <= 0:
                    continue

                operation = instance.accepted_operation
                self.applied.add(instance_id)

                if operation is None or operation.is_noop:
                    self.stats["noops"] += 1
                    continue

                await self._apply_operation(operation)
                applied_now += 1

            self.stats["applied"] += applied_now
            return applied_now

    async def _apply_operation(self, operation: Operation):
        """Apply one operation to the key-value map"""
        if operation.type == OperationType.PUT:
            await self.store.set(operation.key, operation.value)
            self.logger.info(f"Applied PUT {operation.key}=>{operation.value}")
        elif operation.type == OperationType.DELETE:
            await self.store.delete(operation.key)
            self.logger.info(f"Applied DELETE {operation.key}")

    def get_status(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "applied_instances": len(self.applied),
            "stats": dict(self.stats)
        }
