"""
src/paxoskv/networking/peer_client.py
=====================================

Typed outbound calls from one node to the consensus and election
handlers of its peers (including itself).
"""

import logging
from typing import Optional

from paxoskv.consensus.acceptor import AcceptorResponse
from paxoskv.consensus.operation import Operation
from paxoskv.election.election_message import ElectionMessage


class PeerClient:
    """
    Invokes paxos_prepare, paxos_accept and receive_election on a peer

    Every transport failure, timeout or malformed answer is reported as
    AcceptorResponse.FAILURE so callers only ever count responses.
    """

    def __init__(self, network_manager, election_timeout: float = 5.0):
        """
        Args:
            network_manager: NetworkManager used to reach peers
            election_timeout: Timeout for a token hop, which waits on the rest of the ring
        """
        self.network_manager = network_manager
        self.election_timeout = election_timeout
        self.logger = logging.getLogger(f"network.peers.{network_manager.node_address}")

    async def prepare(self, address: str, instance_id: str, proposal_number: int,
                      operation: Optional[Operation]) -> AcceptorResponse:
        payload = {
            "instance_id": instance_id,
            "proposal_number": proposal_number,
            "operation": operation.to_dict() if operation else None
        }
        result = await self.network_manager.send_rpc(address, "paxos_prepare", payload, retries=0)
        return self._parse_response(address, result)

    async def accept(self, address: str, instance_id: str, proposal_number: int,
                     operation: Optional[Operation]) -> AcceptorResponse:
        payload = {
            "instance_id": instance_id,
            "proposal_number": proposal_number,
            "operation": operation.to_dict() if operation else None
        }
        result = await self.network_manager.send_rpc(address, "paxos_accept", payload, retries=0)
        return self._parse_response(address, result)

    async def receive_election(self, address: str, message: ElectionMessage) -> bool:
        """
        Forward an election token to a peer

        Returns:
            True if the peer took the token
        """
        result = await self.network_manager.send_rpc(
            address, "receive_election", message.to_dict(),
            timeout=self.election_timeout, retries=0
        )
        return result is not None

    def _parse_response(self, address: str, result) -> AcceptorResponse:
        if not result:
            return AcceptorResponse.FAILURE

        try:
            return AcceptorResponse(result.get("response"))
        except ValueError:
            self.logger.warning(f"Unexpected acceptor response from {address}: {result}")
            return AcceptorResponse.FAILURE
