"""
src/paxoskv/simulation/scenarios.py
===================================

Demonstration scenarios for the paxoskv replicated store.
Each scenario runs a three-node cluster in-process on a SimulatedNetwork.
"""

import asyncio
import logging
from typing import Dict, Any, List, Tuple

from paxoskv.errors import PaxosKVError
from paxoskv.networking.network_manager import NetworkManager
from paxoskv.node import ReplicaNode, create_node
from paxoskv.services.client import ReplicatedStoreClient
from paxoskv.simulation.failure_sim import FailureSimulator
from paxoskv.simulation.network_sim import SimulatedNetwork


logger = logging.getLogger("demo.scenarios")


def ring_addresses(size: int, base_port: int = 9001) -> List[str]:
    return [f"localhost:{base_port + i}" for i in range(size)]


async def create_simulated_cluster(size: int = 3, config: Dict[str, Any] = None,
                                   failure_simulator: FailureSimulator = None,
                                   network_config: Dict[str, Any] = None
                                   ) -> Tuple[SimulatedNetwork, List[ReplicaNode]]:
    """
    Build and start a cluster on a fresh simulated network

    Args:
        size: Number of nodes in the ring
        config: Settings shared by every node (address and ring are filled in)
        failure_simulator: FailureSimulator shared by every node
        network_config: SimulatedNetwork settings

    Returns:
        The network and the started nodes, in ring order
    """
    config = config or {}
    network = SimulatedNetwork(network_config or {})
    await network.start()

    ring = ring_addresses(size)
    nodes = []
    for address in ring:
        node_config = dict(config, address=address, ring=ring)
        node_config["network"] = dict(config.get("network", {}), simulation_mode=True)
        nodes.append(create_node(node_config, simulated_network=network,
                                 failure_simulator=failure_simulator))

    for node in nodes:
        await node.start(run_election=config.get("run_election", False))

    return network, nodes


async def stop_cluster(network: SimulatedNetwork, nodes: List[ReplicaNode]):
    for node in nodes:
        if node.running:
            await node.stop()
    await network.stop()


async def elect_leader(nodes: List[ReplicaNode]):
    """Let every running node complete one election round"""
    for node in nodes:
        if node.running:
            await node.elector.start_election()
            node.store.leader_address = node.elector.get_leader()


async def learn_all(nodes: List[ReplicaNode]):
    for node in nodes:
        if node.running:
            await node.store.learn_committed()


async def connect_client(network: SimulatedNetwork, address: str,
                         client_address: str = "client:0") -> Tuple[NetworkManager, ReplicatedStoreClient]:
    """Start a client-side network manager on the simulated network"""
    network_manager = NetworkManager(client_address, [], simulation_mode=True,
                                     simulated_network=network)
    await network_manager.start()
    return network_manager, ReplicatedStoreClient(network_manager, address)


async def run(scenario_name: str = "replication"):
    """
    Run a specific demonstration scenario

    Args:
        scenario_name: Name of the scenario to run
    """
    logger.info(f"Running scenario: {scenario_name}")

    scenario = SCENARIOS.get(scenario_name)
    if scenario is None:
        logger.error(f"Unknown scenario: {scenario_name}")
        return

    await scenario()


async def replication_demo():
    """Write through the leader and read the value back from every node"""
    logger.info("Starting replication demonstration")

    failures = FailureSimulator({"rpc_failure_rate": 0.0, "seed": 1})
    network, nodes = await create_simulated_cluster(
        3, {"supervision": {"enabled": False}}, failures
    )
    client_network = None

    try:
        await elect_leader(nodes)
        leader = nodes[0].store.leader_address
        logger.info(f"Cluster elected {leader}")

        client_network, client = await connect_client(network, leader)
        await client.put("greeting", "hello")
        await client.put("answer", "42")
        await learn_all(nodes)

        for node in nodes:
            reader = ReplicatedStoreClient(client_network, node.address)
            logger.info(f"  {node.address}: greeting={await reader.get('greeting')} "
                        f"answer={await reader.get('answer')}")

        follower = ReplicatedStoreClient(client_network, nodes[1].address)
        try:
            await follower.put("greeting", "bonjour")
        except PaxosKVError as e:
            logger.info(f"Write on follower rejected: {e}")

        await client.delete("answer")
        await learn_all(nodes)
        logger.info(f"After delete: answer={await client.get('answer')}")

    finally:
        if client_network:
            await client_network.stop()
        await stop_cluster(network, nodes)


async def failover_demo():
    """Lose acceptors one by one and watch the quorum hold, then break"""
    logger.info("Starting failover demonstration")

    failures = FailureSimulator({"rpc_failure_rate": 0.0, "seed": 2})
    network, nodes = await create_simulated_cluster(
        3, {"supervision": {"enabled": False}}, failures
    )
    leader, follower, other = nodes

    try:
        await elect_leader(nodes)

        await leader.store.put("phase", "all-up")
        logger.info("All nodes up: write committed")

        failures.fail_node(other.address)
        await leader.store.put("phase", "one-down")
        await learn_all(nodes)
        logger.info(f"{other.address} acceptor failing: write committed with 2/3, "
                    f"{other.address} reads phase={await other.store.get('phase')}")

        failures.fail_node(follower.address)
        try:
            await leader.store.put("phase", "two-down")
        except PaxosKVError as e:
            logger.info(f"Two acceptors failing: {e}")

        failures.recover_node(follower.address)
        failures.recover_node(other.address)
        await leader.store.put("phase", "recovered")
        await learn_all(nodes)
        for node in nodes:
            logger.info(f"  {node.address}: phase={await node.store.get('phase')}")

    finally:
        await stop_cluster(network, nodes)


async def supervision_demo(duration: float = 5.0):
    """Run workers with short uptimes and report how often each was restarted"""
    logger.info("Starting supervision demonstration")

    failures = FailureSimulator({
        "rpc_failure_rate": 0.2,
        "uptime": {"acceptor": [0.2, 0.5], "learner": [0.25, 0.6], "proposer": [0.3, 0.7]}
    })
    network, nodes = await create_simulated_cluster(
        3, {"health_check_interval": 0.2, "supervision": {"enabled": True}}, failures
    )

    try:
        await elect_leader(nodes)
        await asyncio.sleep(duration)

        for node in nodes:
            restarts = {s.role_name: s.restart_count for s in node.supervisors}
            logger.info(f"  {node.address}: restarts {restarts}")
        logger.info(f"Failure stats: {failures.get_status()['stats']}")

    finally:
        await stop_cluster(network, nodes)


SCENARIOS = {
    "replication": replication_demo,
    "failover": failover_demo,
    "supervision": supervision_demo
}
