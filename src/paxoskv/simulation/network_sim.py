"""
src/paxoskv/simulation/network_sim.py
=====================================

Network simulation for paxoskv.
Delivers RPCs between in-process nodes with configurable latency,
message loss and partitions.
"""

import asyncio
import logging
import random
import time
from typing import Dict, Any, List, Optional


class SimulatedNetwork:
    """
    Simulated network for distributed systems testing

    Features:
    - In-process message delivery between registered nodes
    - Configurable latency and jitter
    - Message loss simulation
    - Network partition simulation
    """

    def __init__(self, config: Dict[str, Any] = None):
        """
        Initialize the simulated network

        Args:
            config: Configuration parameters
                - seed: Random seed for reproducibility
                - default_latency_ms: Default latency in milliseconds
                - default_jitter_ms: Default jitter in milliseconds
                - default_loss_rate: Default message loss rate (0.0-1.0)
        """
        self.config = config or {}
        self.logger = logging.getLogger("simulation.network")

        # Configuration
        self.seed = self.config.get("seed")
        self.default_latency_ms = self.config.get("default_latency_ms", 10)
        self.default_jitter_ms = self.config.get("default_jitter_ms", 5)
        self.default_loss_rate = self.config.get("default_loss_rate", 0.0)

        self.random = random.Random(self.seed)

        # Network state
        self.nodes = {}  # address -> NetworkManager
        self.links = {}  # (source, target) -> link_properties
        self.partitions = {}  # partition_id -> {node, isolated_nodes, end_time}

        # Background tasks
        self.partition_task = None
        self.running = False

        self.logger.info(f"Initialized SimulatedNetwork with config: {self.config}")

    async def start(self):
        """Start partition expiry management"""
        self.running = True
        self.partition_task = asyncio.create_task(self._manage_partitions())

    async def stop(self):
        self.running = False

        if self.partition_task:
            self.partition_task.cancel()
            try:
                await self.partition_task
            except asyncio.CancelledError:
                pass
            self.partition_task = None

    def register_node(self, address: str, node_handler: Any) -> None:
        """
        Register a node with the simulated network

        Args:
            address: Address of the node
            node_handler: Object implementing async handle_incoming_message
        """
        self.nodes[address] = node_handler
        self.logger.debug(f"Registered node {address}")

    def unregister_node(self, address: str) -> None:
        if address in self.nodes:
            del self.nodes[address]
            self.logger.debug(f"Unregistered node {address}")

    def set_link_properties(self, source: str, target: str,
                            latency_ms: Optional[float] = None,
                            jitter_ms: Optional[float] = None,
                            loss_rate: Optional[float] = None) -> None:
        """
        Set properties for a network link

        Args:
            source: Source node address
            target: Target node address
            latency_ms: Latency in milliseconds
            jitter_ms: Jitter in milliseconds
            loss_rate: Message loss rate (0.0-1.0)
        """
        link_key = (source, target)

        if link_key not in self.links:
            self.links[link_key] = self._default_link()

        if latency_ms is not None:
            self.links[link_key]["latency_ms"] = latency_ms

        if jitter_ms is not None:
            self.links[link_key]["jitter_ms"] = jitter_ms

        if loss_rate is not None:
            self.links[link_key]["loss_rate"] = loss_rate

        self.logger.debug(f"Set link properties for {source} -> {target}: {self.links[link_key]}")

    def set_link_loss(self, source: str, target: str, loss_rate: float) -> None:
        self.set_link_properties(source, target, loss_rate=loss_rate)

    def create_partition(self, node: str, isolated_nodes: List[str],
                         duration_sec: float) -> str:
        """
        Create a network partition

        Args:
            node: Address of the node to partition
            isolated_nodes: Addresses to isolate it from
            duration_sec: Duration of partition in seconds

        Returns:
            Partition ID
        """
        partition_id = f"partition_{int(time.time())}_{self.random.randint(1000, 9999)}"
        end_time = time.time() + duration_sec

        self.partitions[partition_id] = {
            "node": node,
            "isolated_nodes": list(isolated_nodes),
            "end_time": end_time
        }

        self.logger.info(f"Created partition {partition_id}: {node} isolated from "
                         f"{isolated_nodes} for {duration_sec}s")

        return partition_id

    def remove_partition(self, partition_id: str) -> bool:
        if partition_id in self.partitions:
            del self.partitions[partition_id]
            self.logger.info(f"Removed partition {partition_id}")
            return True

        return False

    async def deliver_message(self, source: str, target: str, message: Any) -> Any:
        """
        Deliver a message from source to target and return the reply

        Raises:
            ConnectionError: if the target is not registered
            TimeoutError: if the message or its reply is lost or partitioned
        """
        if target not in self.nodes:
            raise ConnectionError(f"Target node {target} not registered")

        if self._is_partitioned(source, target):
            self.logger.debug(f"Message from {source} to {target} dropped due to partition")
            raise TimeoutError("Network partition")

        link_props = self.links.get((source, target), self._default_link())

        if self.random.random() < link_props["loss_rate"]:
            self.logger.debug(f"Message from {source} to {target} dropped due to message loss")
            raise TimeoutError("Message loss")

        delay = self._link_delay(link_props)
        if delay > 0:
            await asyncio.sleep(delay)

        response = await self.nodes[target].handle_incoming_message(source, message)

        if self.random.random() < link_props["loss_rate"]:
            self.logger.debug(f"Response from {target} to {source} dropped due to message loss")
            raise TimeoutError("Message loss")

        if delay > 0:
            await asyncio.sleep(delay)

        return response

    def _default_link(self) -> Dict[str, float]:
        return {
            "latency_ms": self.default_latency_ms,
            "jitter_ms": self.default_jitter_ms,
            "loss_rate": self.default_loss_rate
        }

    def _link_delay(self, link_props: Dict[str, float]) -> float:
        latency = link_props["latency_ms"]
        jitter = link_props["jitter_ms"]
        return max(0.0, latency + self.random.uniform(-jitter, jitter)) / 1000.0

    def _is_partitioned(self, source: str, target: str) -> bool:
        for partition in self.partitions.values():
            node = partition["node"]
            isolated_nodes = partition["isolated_nodes"]

            if (source == node and target in isolated_nodes) or (target == node and source in isolated_nodes):
                return True

        return False

    async def _manage_partitions(self):
        """Background task removing expired partitions"""
        while self.running:
            try:
                current_time = time.time()

                expired_partitions = [
                    partition_id for partition_id, partition in self.partitions.items()
                    if current_time >= partition["end_time"]
                ]

                for partition_id in expired_partitions:
                    self.remove_partition(partition_id)

                await asyncio.sleep(1.0)

            except asyncio.CancelledError:
                self.running = False
                break
            except Exception as e:
                self.logger.error(f"Error in partition management: {e}")
                await asyncio.sleep(5.0)

    def get_network_status(self) -> Dict[str, Any]:
        return {
            "nodes": list(self.nodes.keys()),
            "links": {f"{s}->{t}": props for (s, t), props in self.links.items()},
            "partitions": {
                pid: {
                    "node": p["node"],
                    "isolated_nodes": p["isolated_nodes"],
                    "remaining_sec": max(0, p["end_time"] - time.time())
                }
                for pid, p in self.partitions.items()
            }
        }
