"""
src/paxoskv/services/rpc_service.py
===================================

Binds a ReplicatedStore to the NetworkManager's RPC handlers.
Translates JSON payloads into store calls and store exceptions into
error codes the client can map back.
"""

import logging
from typing import Dict, Any

from paxoskv.consensus.operation import Operation
from paxoskv.election.election_message import ElectionMessage
from paxoskv.errors import ConsensusError, InvalidRequestError, NotLeaderError


# Error codes carried in failed client responses
ERROR_INVALID_REQUEST = "invalid_request"
ERROR_NOT_LEADER = "not_leader"
ERROR_CONSENSUS_FAILED = "consensus_failed"


class StoreRPCService:
    """RPC surface of one node"""

    def __init__(self, store, network_manager):
        self.store = store
        self.network_manager = network_manager
        self.logger = logging.getLogger(f"services.rpc.{store.address}")

    def register(self):
        """Register every handler with the network manager"""
        self.network_manager.register_handlers({
            "put": self.handle_put,
            "get": self.handle_get,
            "delete": self.handle_delete,
            "paxos_prepare": self.handle_paxos_prepare,
            "paxos_accept": self.handle_paxos_accept,
            "receive_election": self.handle_receive_election,
            "status": self.handle_status
        })

    async def handle_put(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client_write(
            self.store.put, payload.get("key"), payload.get("value")
        )

    async def handle_delete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client_write(self.store.delete, payload.get("key"))

    async def handle_get(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        value = await self.store.get(payload.get("key"))
        return {
            "success": True,
            "found": value is not None,
            "value": value
        }

    async def handle_paxos_prepare(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.store.paxos_prepare(
            payload["instance_id"],
            int(payload["proposal_number"]),
            Operation.from_dict(payload.get("operation"))
        )
        return {"response": response.value}

    async def handle_paxos_accept(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.store.paxos_accept(
            payload["instance_id"],
            int(payload["proposal_number"]),
            Operation.from_dict(payload.get("operation"))
        )
        return {"response": response.value}

    async def handle_receive_election(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        leader = await self.store.receive_election(ElectionMessage.from_dict(payload))
        return {"leader": leader}

    async def handle_status(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.get_status()

    async def _client_write(self, operation, *args) -> Dict[str, Any]:
        try:
            await operation(*args)
            return {"success": True}
        except InvalidRequestError as e:
            return self._error(ERROR_INVALID_REQUEST, e)
        except NotLeaderError as e:
            result = self._error(ERROR_NOT_LEADER, e)
            result["leader"] = e.leader
            return result
        except ConsensusError as e:
            self.logger.warning(f"Client write failed: {e}")
            return self._error(ERROR_CONSENSUS_FAILED, e)

    def _error(self, code: str, error: Exception) -> Dict[str, Any]:
        return {
            "success": False,
            "error": code,
            "message": str(error)
        }
