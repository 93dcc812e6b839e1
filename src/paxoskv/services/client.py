"""
src/paxoskv/services/client.py
==============================

Client for interacting with a replicated key-value store node.
Sends put/get/delete RPCs to one node and maps error codes in the
responses back to the store's exceptions.
"""

import logging
import uuid
from typing import Dict, Any, Optional

from paxoskv.errors import ConsensusError, InvalidRequestError, NotLeaderError, PaxosKVError
from paxoskv.services.rpc_service import (
    ERROR_CONSENSUS_FAILED, ERROR_INVALID_REQUEST, ERROR_NOT_LEADER
)


class ReplicatedStoreClient:
    """
    Client interface for one replica

    Writes must go to the leader; a NotLeaderError carries the leader the
    contacted node knows about, which is also remembered in self.leader.
    """

    def __init__(self, network_manager, address: str, timeout: float = 5.0):
        """
        Initialize the client

        Args:
            network_manager: Started NetworkManager used to send RPCs
            address: Address of the node to talk to
            timeout: Request timeout in seconds
        """
        self.network_manager = network_manager
        self.address = address
        self.timeout = timeout

        client_id = str(uuid.uuid4())[:8]
        self.logger = logging.getLogger(f"services.client.{client_id}")

        self.leader: Optional[str] = None

        self.metrics = {
            "requests": 0,
            "successes": 0,
            "failures": 0
        }

    async def put(self, key: str, value: str):
        """
        Store or update a key

        Raises:
            InvalidRequestError, NotLeaderError, ConsensusError: as raised by the node
            ConnectionError: if the node did not answer
        """
        await self._request("put", {"key": key, "value": value})

    async def get(self, key: str) -> Optional[str]:
        """Value stored under key on the contacted node, or None"""
        result = await self._request("get", {"key": key})
        return result.get("value") if result.get("found") else None

    async def delete(self, key: str):
        """
        Delete a key

        Raises:
            InvalidRequestError, NotLeaderError, ConsensusError: as raised by the node
            ConnectionError: if the node did not answer
        """
        await self._request("delete", {"key": key})

    async def status(self) -> Dict[str, Any]:
        """Status dict of the contacted node"""
        return await self._request("status", {})

    async def _request(self, rpc_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.metrics["requests"] += 1
        self.logger.debug(f"{rpc_type.upper()} {payload} -> {self.address}")

        result = await self.network_manager.send_rpc(
            self.address, rpc_type, payload, timeout=self.timeout, retries=0
        )

        if result is None:
            self.metrics["failures"] += 1
            raise ConnectionError(f"No response from {self.address} for {rpc_type}")

        if result.get("success", True):
            self.metrics["successes"] += 1
            return result

        self.metrics["failures"] += 1
        raise self._map_error(result)

    def _map_error(self, result: Dict[str, Any]) -> PaxosKVError:
        code = result.get("error")
        message = result.get("message", code)

        if code == ERROR_NOT_LEADER:
            self.leader = result.get("leader")
            return NotLeaderError(self.address, self.leader)
        if code == ERROR_INVALID_REQUEST:
            return InvalidRequestError(message)
        if code == ERROR_CONSENSUS_FAILED:
            return ConsensusError(message)

        return PaxosKVError(f"Unexpected error from {self.address}: {message}")
