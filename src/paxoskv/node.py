"""
src/paxoskv/node.py
===================

Construction and lifecycle of a replica node.
Wires the transport, the Paxos roles, the leader elector and the role
supervisors together from a configuration dict.
"""

import logging
from typing import Dict, Any, List, Optional

from paxoskv.consensus.acceptor import Acceptor
from paxoskv.consensus.learner import Learner
from paxoskv.consensus.proposer import Proposer
from paxoskv.election.leader_elector import LeaderElector
from paxoskv.networking.network_manager import NetworkManager
from paxoskv.networking.peer_client import PeerClient
from paxoskv.services.replicated_store import ReplicatedStore
from paxoskv.services.rpc_service import StoreRPCService
from paxoskv.simulation.failure_sim import FailureSimulator
from paxoskv.storage.memory_store import MemoryStore
from paxoskv.supervisor.role_supervisor import RoleSupervisor
from paxoskv.supervisor.workers import AcceptorWorker, LearnerWorker, ProposerWorker


class ReplicaNode:
    """Handle on every component of one running replica"""

    def __init__(self, address: str, ring: List[str], network_manager: NetworkManager,
                 store: ReplicatedStore, rpc_service: StoreRPCService,
                 elector: LeaderElector, failure_simulator: FailureSimulator,
                 supervisors: List[RoleSupervisor]):
        self.address = address
        self.ring = ring
        self.network_manager = network_manager
        self.store = store
        self.rpc_service = rpc_service
        self.elector = elector
        self.failure_simulator = failure_simulator
        self.supervisors = supervisors

        self.logger = logging.getLogger(f"node.{address}")
        self.running = False

    async def start(self, run_election: bool = True):
        """
        Start the node

        Args:
            run_election: Start the periodic election task (tests drive rounds by hand)
        """
        self.logger.info(f"Starting node {self.address} in ring {self.ring}")

        self.rpc_service.register()
        await self.network_manager.start()

        if run_election:
            await self.elector.start()

        for supervisor in self.supervisors:
            await supervisor.start()

        self.running = True
        self.logger.info(f"Node {self.address} ready")

    async def stop(self):
        """Stop all components in reverse order of start"""
        self.logger.info(f"Shutting down node {self.address}")
        self.running = False

        for supervisor in reversed(self.supervisors):
            await supervisor.stop()

        await self.elector.stop()
        await self.network_manager.stop()

        self.logger.info(f"Node {self.address} shut down successfully")

    def get_status(self) -> Dict[str, Any]:
        status = self.store.get_status()
        status["network"] = self.network_manager.get_network_status()
        status["supervisors"] = [s.get_status() for s in self.supervisors]
        status["failures"] = self.failure_simulator.get_status()
        return status


def create_node(config: Dict[str, Any], simulated_network=None,
                failure_simulator: Optional[FailureSimulator] = None) -> ReplicaNode:
    """
    Build a replica node from configuration

    Args:
        config: Node configuration
            - address: host:port of this node
            - ring: Every node address in ring order, this node included
            - election_interval: Seconds between election rounds
            - health_check_interval: Seconds between supervisor health checks
            - supervision: {"enabled": bool}
            - network: NetworkManager settings plus simulation_mode and election_timeout
            - failure: FailureSimulator settings
        simulated_network: SimulatedNetwork to join when in simulation mode
        failure_simulator: Shared FailureSimulator (one is built from config if omitted)

    Returns:
        A ReplicaNode ready to be started
    """
    address = config.get("address")
    ring = list(config.get("ring") or [address])

    if not address:
        raise ValueError("Node configuration requires an address")
    if address not in ring:
        raise ValueError(f"Node address {address} is not part of the ring {ring}")
    if len(set(ring)) != len(ring):
        raise ValueError(f"Ring contains duplicate addresses: {ring}")

    network_config = config.get("network", {})
    election_interval = config.get("election_interval", 5.0)
    health_check_interval = config.get("health_check_interval", 1.0)
    supervision_enabled = config.get("supervision", {}).get("enabled", True)

    if failure_simulator is None:
        failure_simulator = FailureSimulator(config.get("failure", {}))

    network_manager = NetworkManager(
        node_address=address,
        peer_addresses=ring,
        config=network_config,
        simulation_mode=network_config.get("simulation_mode", simulated_network is not None),
        simulated_network=simulated_network
    )
    peer_client = PeerClient(network_manager, network_config.get("election_timeout", 5.0))

    # Paxos roles share the acceptor's instance map
    acceptor = Acceptor(address, {}, failure_simulator)
    local_map = MemoryStore({"name": address})
    learner = Learner(address, acceptor, local_map)
    proposer = Proposer(address, ring, peer_client)

    elector = LeaderElector(ring, ring.index(address), peer_client, election_interval)

    store = ReplicatedStore(address, acceptor, proposer, learner, elector, local_map)
    rpc_service = StoreRPCService(store, network_manager)

    supervisors = []
    if supervision_enabled:
        supervisors = [
            RoleSupervisor("Acceptor", lambda: AcceptorWorker(store, failure_simulator).run(),
                           health_check_interval),
            RoleSupervisor("Proposer", lambda: ProposerWorker(store, failure_simulator).run(),
                           health_check_interval),
            RoleSupervisor("Learner", lambda: LearnerWorker(store, failure_simulator).run(),
                           health_check_interval)
        ]

    return ReplicaNode(address, ring, network_manager, store, rpc_service,
                       elector, failure_simulator, supervisors)
