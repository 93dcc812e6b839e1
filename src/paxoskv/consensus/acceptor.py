"""
src/paxoskv/consensus/acceptor.py
=================================

Acceptor role of the Paxos protocol.
Records promises and accepted proposals for every consensus instance
a node has been asked about.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, Optional, Any

from paxoskv.consensus.operation import Operation


class AcceptorResponse(Enum):
    """Answers an acceptor can give to prepare/accept"""
    PROMISE = "PROMISE"
    ACCEPTED = "ACCEPTED"
    NACK = "NACK"
    FAILURE = "FAILURE"


class ConsensusInstance:
    """State of a single consensus instance on one acceptor"""

    def __init__(self):
        self.promised_number = 0
        self.accepted_number = 0
        self.accepted_operation: Optional[Operation] = None
        self.lock = asyncio.Lock()

    def to_dict(self):
        return {
            "promised_number": self.promised_number,
            "accepted_number": self.accepted_number,
            "accepted_operation": (self.accepted_operation.to_dict()
                                   if self.accepted_operation else None)
        }

    def __repr__(self):
        return (f"ConsensusInstance(promised={self.promised_number}, "
                f"accepted={self.accepted_number}, op={self.accepted_operation})")


class Acceptor:
    """
    Paxos acceptor

    Answers prepare and accept requests against a map of consensus
    instances keyed by instance id. Each call may be turned into a
    FAILURE by the failure simulator to model an unreachable acceptor.
    """

    def __init__(self, node_id: str, instances: Dict[str, ConsensusInstance] = None,
                 failure_simulator=None):
        """
        Initialize the acceptor

        Args:
            node_id: Address of the node owning this acceptor
            instances: Instance map shared with the local learner
            failure_simulator: FailureSimulator deciding simulated failures
        """
        self.node_id = node_id
        self.instances = instances if instances is not None else {}
        self.failure_simulator = failure_simulator

        self.logger = logging.getLogger(f"paxos.acceptor.{node_id}")

        self.stats = {
            "prepares": 0,
            "accepts": 0,
            "promises": 0,
            "accepted": 0,
            "nacks": 0,
            "failures": 0
        }

    def _instance(self, instance_id: str) -> ConsensusInstance:
        # No await between lookup and insert, so creation is atomic
        instance = self.instances.get(instance_id)
        if instance is None:
            instance = ConsensusInstance()
            self.instances[instance_id] = instance
        return instance

    def _simulate_failure(self) -> bool:
        if self.failure_simulator is None:
            return False
        return self.failure_simulator.should_fail_rpc(self.node_id)

    async def prepare(self, instance_id: str, proposal_number: int) -> AcceptorResponse:
        """
        Handle a prepare request

        Args:
            instance_id: Consensus instance identifier
            proposal_number: Proposal number of this prepare

        Returns:
            PROMISE, NACK, or FAILURE if a failure was simulated
        """
        self.stats["prepares"] += 1

        if self._simulate_failure():
            self.stats["failures"] += 1
            self.logger.error(f"Simulated failure in prepare: inst={instance_id} pn={proposal_number}")
            return AcceptorResponse.FAILURE

        instance = self._instance(instance_id)
        async with instance.lock:
            if proposal_number > instance.promised_number:
                instance.promised_number = proposal_number
                self.stats["promises"] += 1
                self.logger.debug(f"PROMISE inst={instance_id} pn={proposal_number}")
                return AcceptorResponse.PROMISE

            self.stats["nacks"] += 1
            self.logger.debug(f"NACK prepare inst={instance_id} pn={proposal_number} "
                              f"promised={instance.promised_number}")
            return AcceptorResponse.NACK

    async def accept(self, instance_id: str, proposal_number: int,
                     operation: Optional[Operation]) -> AcceptorResponse:
        """
        Handle an accept request

        Args:
            instance_id: Consensus instance identifier
            proposal_number: Proposal number to accept
            operation: Operation to accept if allowed

        Returns:
            ACCEPTED, NACK, or FAILURE if a failure was simulated
        """
        self.stats["accepts"] += 1

        if self._simulate_failure():
            self.stats["failures"] += 1
            self.logger.error(f"Simulated failure in accept: inst={instance_id} pn={proposal_number}")
            return AcceptorResponse.FAILURE

        instance = self._instance(instance_id)
        async with instance.lock:
            # Non-strict: a proposer may accept at the number it was just promised
            if proposal_number >= instance.promised_number:
                instance.accepted_number = proposal_number
                instance.accepted_operation = operation
                self.stats["accepted"] += 1
                self.logger.debug(f"ACCEPTED inst={instance_id} pn={proposal_number} op={operation}")
                return AcceptorResponse.ACCEPTED

            self.stats["nacks"] += 1
            self.logger.debug(f"NACK accept inst={instance_id} pn={proposal_number} "
                              f"promised={instance.promised_number}")
            return AcceptorResponse.NACK

    def snapshot(self) -> Dict[str, ConsensusInstance]:
        """Shallow copy of the instance map, safe to iterate across awaits"""
        return dict(self.instances)

    def get_status(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "instances": len(self.instances),
            "stats": dict(self.stats)
        }
