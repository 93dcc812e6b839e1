"""
src/paxoskv/services/replicated_store.py
========================================

Replicated key-value store facade for one node.
Gates client writes on leadership, runs them through consensus, and
exposes the acceptor and election operations called by peers.
"""

import logging
from typing import Dict, Any, Optional

from paxoskv.consensus.acceptor import Acceptor, AcceptorResponse
from paxoskv.consensus.learner import Learner
from paxoskv.consensus.operation import Operation
from paxoskv.consensus.proposer import Proposer
from paxoskv.election.election_message import ElectionMessage
from paxoskv.election.leader_elector import LeaderElector
from paxoskv.errors import ConsensusError, InvalidRequestError, NotLeaderError
from paxoskv.storage.memory_store import MemoryStore


class ReplicatedStore:
    """
    Node facade over the Paxos roles and the leader elector

    Writes are only accepted when the cached leader address is this node.
    Reads are served from the learner's local map without contacting peers
    and may lag behind an in-flight write.
    """

    def __init__(self, address: str, acceptor: Acceptor, proposer: Proposer,
                 learner: Learner, elector: LeaderElector, store: MemoryStore):
        self.address = address
        self.acceptor = acceptor
        self.proposer = proposer
        self.learner = learner
        self.elector = elector
        self.store = store

        self.logger = logging.getLogger(f"store.{address}")

        # Written only after this node's own election completes
        self.leader_address: Optional[str] = elector.get_leader()

    # Client-facing operations

    async def put(self, key: str, value: str):
        """
        Store or update a key through consensus

        Raises:
            InvalidRequestError: if key or value is empty
            NotLeaderError: if this node is not the leader
            ConsensusError: if quorum is not reached
        """
        self._validate_key(key)
        if not isinstance(value, str) or not value.strip():
            raise InvalidRequestError("Value must be a non-empty string for PUT")
        self._ensure_leader()

        await self.proposer.propose(Operation.put(key, value))
        self.logger.info(f"PUT {key}={value} reached consensus")

    async def get(self, key: str) -> Optional[str]:
        """Value for key from the local map, or None if not found"""
        value = await self.store.get(key)
        self.logger.debug(f"GET {key} => {value if value is not None else 'NOT_FOUND'}")
        return value

    async def delete(self, key: str):
        """
        Delete a key through consensus

        Raises:
            InvalidRequestError: if key is empty or not present on the leader
            NotLeaderError: if this node is not the leader
            ConsensusError: if quorum is not reached
        """
        self._validate_key(key)
        self._ensure_leader()
        if not await self.store.exists(key):
            raise InvalidRequestError(f"Key not found: {key}")

        await self.proposer.propose(Operation.delete(key))
        self.logger.info(f"DELETE {key} reached consensus")

    # Peer-facing operations

    async def paxos_prepare(self, instance_id: str, proposal_number: int,
                            operation: Optional[Operation] = None) -> AcceptorResponse:
        return await self.acceptor.prepare(instance_id, proposal_number)

    async def paxos_accept(self, instance_id: str, proposal_number: int,
                           operation: Optional[Operation]) -> AcceptorResponse:
        return await self.acceptor.accept(instance_id, proposal_number, operation)

    async def receive_election(self, message: ElectionMessage) -> Optional[str]:
        await self.elector.receive(message)
        self.leader_address = self.elector.get_leader()
        return self.leader_address

    # Hooks for the role workers

    def is_leader(self) -> bool:
        return self.leader_address == self.address

    async def no_op_proposal(self) -> bool:
        """
        Propose a NOOP round

        Returns:
            True if the round reached consensus
        """
        try:
            await self.proposer.propose(Operation.noop())
            self.logger.info("No-op proposal succeeded")
            return True
        except ConsensusError as e:
            self.logger.error(f"No-op failed: {e}")
            return False

    async def learn_committed(self) -> int:
        return await self.learner.learn()

    def get_status(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "leader": self.leader_address,
            "is_leader": self.is_leader(),
            "keys": len(self.store.data),
            "acceptor": self.acceptor.get_status(),
            "proposer": self.proposer.get_status(),
            "learner": self.learner.get_status(),
            "election": dict(self.elector.stats)
        }

    def _validate_key(self, key: str):
        if not isinstance(key, str) or not key.strip():
            raise InvalidRequestError("Key must be a non-empty string")

    def _ensure_leader(self):
        if not self.is_leader():
            raise NotLeaderError(self.address, self.leader_address)
