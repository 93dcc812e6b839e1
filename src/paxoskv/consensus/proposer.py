"""
src/paxoskv/consensus/proposer.py
=================================

Proposer role of the Paxos protocol.
Drives a single operation through the prepare and accept phases
against every acceptor in the cluster.
"""

import asyncio
import logging
import time
from typing import Dict, List, Any

from paxoskv.consensus.acceptor import AcceptorResponse
from paxoskv.consensus.operation import Operation
from paxoskv.errors import ConsensusError


def quorum_size(peer_count: int) -> int:
    """Majority of a cluster of peer_count nodes"""
    return peer_count // 2 + 1


class Proposer:
    """
    Paxos proposer

    Only the elected leader should call propose. Each call opens a fresh
    consensus instance; a round that misses quorum is abandoned without
    telling the acceptors that did answer.
    """

    def __init__(self, node_id: str, peer_addresses: List[str], peer_client):
        """
        Initialize the proposer

        Args:
            node_id: Address of the local node
            peer_addresses: Every replica address, the local node included
            peer_client: PeerClient used to reach acceptors, self included
        """
        self.node_id = node_id
        self.peer_addresses = list(peer_addresses)
        self.peer_client = peer_client

        self.logger = logging.getLogger(f"paxos.proposer.{node_id}")

        # Scoped to this proposer only, not cluster-wide
        self.proposal_counter = 0

        self.stats = {
            "rounds": 0,
            "succeeded": 0,
            "prepare_failed": 0,
            "accept_failed": 0
        }

    @property
    def quorum(self) -> int:
        return quorum_size(len(self.peer_addresses))

    def _next_instance_id(self) -> str:
        return f"inst-{time.time_ns()}"

    async def propose(self, operation: Operation) -> str:
        """
        Run one consensus round for an operation

        Args:
            operation: Operation to propose

        Returns:
            The instance id the operation was accepted under

        Raises:
            ConsensusError: if prepare or accept quorum cannot be reached
        """
        instance_id = self._next_instance_id()
        self.proposal_counter += 1
        proposal_number = self.proposal_counter
        total = len(self.peer_addresses)

        self.stats["rounds"] += 1
        self.logger.debug(f"Proposing {operation} as {instance_id} pn={proposal_number}")

        # Prepare phase
        responses = await self._broadcast(self.peer_client.prepare, instance_id,
                                          proposal_number, operation)
        promises = responses.count(AcceptorResponse.PROMISE)
        if promises < self.quorum:
            self.stats["prepare_failed"] += 1
            raise ConsensusError(f"prepare quorum failed: {promises}/{total}")

        # Accept phase
        responses = await self._broadcast(self.peer_client.accept, instance_id,
                                          proposal_number, operation)
        accepts = responses.count(AcceptorResponse.ACCEPTED)
        if accepts < self.quorum:
            self.stats["accept_failed"] += 1
            raise ConsensusError(f"accept quorum failed: {accepts}/{total}")

        self.stats["succeeded"] += 1
        self.logger.info(f"Consensus reached for {operation} as {instance_id} "
                         f"({accepts}/{total} accepted)")
        return instance_id

    async def _broadcast(self, call, instance_id: str, proposal_number: int,
                         operation: Operation) -> List[AcceptorResponse]:
        """Send one phase to every peer concurrently"""
        results = await asyncio.gather(
            *(call(address, instance_id, proposal_number, operation)
              for address in self.peer_addresses),
            return_exceptions=True
        )

        responses = []
        for address, result in zip(self.peer_addresses, results):
            if isinstance(result, BaseException):
                self.logger.warning(f"Error calling acceptor {address}: {result}")
                responses.append(AcceptorResponse.FAILURE)
            else:
                responses.append(result)
        return responses

    def get_status(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "proposal_counter": self.proposal_counter,
            "quorum": self.quorum,
            "stats": dict(self.stats)
        }
