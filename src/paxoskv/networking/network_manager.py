"""
src/paxoskv/networking/network_manager.py
=========================================

Network manager for handling communication between replica nodes.
This component abstracts away the network details and provides
request/response RPCs with timeouts, retries and peer reconnection.
"""

import asyncio
import logging
import random
import time
import json
import aiohttp
from aiohttp import web
from typing import Dict, Callable, Any, List, Optional


class NetworkManager:
    """
    Network manager for replica-to-replica communication

    Handles:
    - RPC request/response over HTTP (POST /rpc)
    - Timeouts and retries
    - Tracking of unreachable peers and background reconnection
    - In-process network simulation (for tests and demos)
    """

    def __init__(self, node_address: str, peer_addresses: List[str],
                 config: Dict[str, Any] = None, simulation_mode: bool = False,
                 simulated_network=None):
        """
        Initialize the network manager

        Args:
            node_address: Network address (host:port) of this node, also its id
            peer_addresses: Addresses of every node in the cluster
            config: Configuration parameters
                - base_timeout: Default RPC timeout in seconds
                - max_retries: Default number of retries per RPC
                - retry_backoff: Timeout multiplier applied on each retry
                - reconnect_interval: Seconds between reconnection attempts
            simulation_mode: If True, operate in simulation mode (no actual network)
            simulated_network: SimulatedNetwork shared by simulated nodes
        """
        self.node_address = node_address
        self.node_id = node_address
        self.peer_addresses = list(peer_addresses)
        self.config = config or {}
        self.simulation_mode = simulation_mode

        # Set up logging
        self.logger = logging.getLogger(f"network.{node_address}")

        # RPC handlers
        self.rpc_handlers: Dict[str, Callable] = {}

        # HTTP server and client
        self.runner = None
        self.server = None
        self.client_session = None

        # For simulation mode
        self.simulated_network = simulated_network
        self.owns_simulated_network = False

        # Network status
        self.connected_nodes = set()
        self.unreachable_nodes = set()
        self.network_latency = {}  # address -> latency in ms
        self.reconnect_task = None
        self.running = False

        # RPC statistics
        self.rpc_stats = {
            "sent": 0,
            "received": 0,
            "failures": 0,
            "retries": 0,
            "timeouts": 0,
            "reconnections": 0
        }

        # Configuration
        self.max_retries = self.config.get("max_retries", 1)
        self.retry_backoff = self.config.get("retry_backoff", 1.5)
        self.base_timeout = self.config.get("base_timeout", 0.5)
        self.reconnect_interval = self.config.get("reconnect_interval", 5.0)

    async def start(self):
        """Start the network manager"""
        self.logger.info(f"Starting network manager for node {self.node_address}")
        self.running = True

        if "ping" not in self.rpc_handlers:
            self.rpc_handlers["ping"] = self._handle_ping

        if self.simulation_mode:
            if self.simulated_network is None:
                from paxoskv.simulation.network_sim import SimulatedNetwork
                self.simulated_network = SimulatedNetwork()
                self.owns_simulated_network = True
                await self.simulated_network.start()
            self.simulated_network.register_node(self.node_address, self)
            self.logger.info("Running in network simulation mode")
        else:
            self.client_session = aiohttp.ClientSession(
                json_serialize=json.dumps,
                timeout=aiohttp.ClientTimeout(total=30)
            )

            # The node is operational once bound, whatever its peers' state
            await self._start_server()

        await self._test_connectivity()
        self.reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def stop(self):
        """Stop the network manager"""
        self.logger.info(f"Stopping network manager for node {self.node_address}")
        self.running = False

        if self.reconnect_task:
            self.reconnect_task.cancel()
            try:
                await self.reconnect_task
            except asyncio.CancelledError:
                pass
            self.reconnect_task = None

        if self.simulation_mode:
            if self.simulated_network:
                self.simulated_network.unregister_node(self.node_address)
                if self.owns_simulated_network:
                    await self.simulated_network.stop()
        else:
            if self.client_session:
                await self.client_session.close()
                self.client_session = None

            if self.runner:
                await self.runner.cleanup()
                self.runner = None
                self.server = None

    async def _start_server(self):
        """Start the HTTP server for handling incoming RPCs"""

        async def handle_rpc(request):
            """Handle incoming RPC requests"""
            try:
                data = await request.json()
                rpc_type = data.get("rpc_type")
                rpc_id = data.get("rpc_id")
                sender_id = data.get("sender_id")
                payload = data.get("payload", {})

                self.logger.debug(f"Received RPC {rpc_type} from {sender_id}")
                self.rpc_stats["received"] += 1

                if rpc_type not in self.rpc_handlers:
                    return web.json_response({
                        "success": False,
                        "error": "unknown_rpc_type"
                    }, status=400)

                handler = self.rpc_handlers[rpc_type]
                result = await handler(payload)

                return web.json_response({
                    "success": True,
                    "rpc_id": rpc_id,
                    "result": result
                })
            except Exception as e:
                self.logger.error(f"Error handling RPC: {e}")
                return web.json_response({
                    "success": False,
                    "error": str(e)
                }, status=500)

        app = web.Application()
        app.add_routes([
            web.post('/rpc', handle_rpc)
        ])

        host, port_str = self.node_address.rsplit(":", 1)
        port = int(port_str)

        self.runner = web.AppRunner(app)
        await self.runner.setup()
        self.server = web.TCPSite(self.runner, host, port)
        await self.server.start()

        self.logger.info(f"RPC server started on {self.node_address}")

    async def _test_connectivity(self):
        """Probe every peer once, queueing the unreachable ones for retry"""
        for address in self.peer_addresses:
            if address == self.node_address:
                continue

            if await self._ping(address):
                self.logger.info(f"Connected to peer {address}, "
                                 f"latency: {self.network_latency[address]:.2f}ms")
            else:
                self.logger.warning(f"Failed to connect to peer {address}")

    async def _ping(self, address: str) -> bool:
        start_time = time.time()
        response = await self.send_rpc(address, "ping", {}, timeout=1.0, retries=0)
        if response and response.get("status") == "ok":
            self.network_latency[address] = (time.time() - start_time) * 1000
            return True
        return False

    async def _reconnect_loop(self):
        """Background task retrying unreachable peers"""
        while self.running:
            try:
                await asyncio.sleep(self.reconnect_interval)

                for address in sorted(self.unreachable_nodes):
                    if await self._ping(address):
                        self.rpc_stats["reconnections"] += 1
                        self.logger.info(f"Reconnected to peer {address}")

                        if not self.unreachable_nodes:
                            self.logger.info("All peers reconnected")

            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in reconnection task: {e}")

    def register_handlers(self, handlers: Dict[str, Callable]):
        """
        Register RPC handlers

        Args:
            handlers: Dict mapping RPC types to handler coroutines
        """
        self.rpc_handlers.update(handlers)

        if "ping" not in self.rpc_handlers:
            self.rpc_handlers["ping"] = self._handle_ping

    async def _handle_ping(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Built-in handler for ping messages"""
        return {
            "status": "ok",
            "node_id": self.node_address,
            "timestamp": time.time()
        }

    async def send_rpc(self, target_address: str, rpc_type: str, payload: Dict[str, Any],
                       timeout: float = None, retries: int = None) -> Optional[Dict[str, Any]]:
        """
        Send an RPC to a target node

        Args:
            target_address: Address of the target node
            rpc_type: Type of RPC
            payload: RPC payload data
            timeout: Operation timeout in seconds (None for default)
            retries: Number of retries (None for default)

        Returns:
            Response payload or None if failed
        """
        timeout = timeout or self.base_timeout
        retries = retries if retries is not None else self.max_retries

        self.rpc_stats["sent"] += 1

        if self.simulation_mode:
            result = await self._send_simulated_rpc(target_address, rpc_type, payload, timeout)
            self._track_reachability(target_address, result is not None)
            return result

        rpc_id = f"{self.node_address}-{int(time.time() * 1000)}-{random.randint(0, 10000)}"

        request_data = {
            "rpc_type": rpc_type,
            "rpc_id": rpc_id,
            "sender_id": self.node_address,
            "payload": payload
        }

        current_retry = 0
        current_timeout = timeout

        while current_retry <= retries:
            try:
                self.logger.debug(f"Sending RPC {rpc_type} to {target_address} (attempt {current_retry+1})")

                url = f"http://{target_address}/rpc"
                timeout_obj = aiohttp.ClientTimeout(total=current_timeout)

                async with self.client_session.post(
                    url, json=request_data, timeout=timeout_obj
                ) as response:
                    if response.status == 200:
                        response_data = await response.json()
                        self._track_reachability(target_address, True)
                        return response_data.get("result")
                    else:
                        error_text = await response.text()
                        self.logger.warning(f"RPC failed with status {response.status}: {error_text}")
                        self.rpc_stats["failures"] += 1
                        # The peer answered, so it is reachable; do not retry handler errors
                        self._track_reachability(target_address, True)
                        return None

            except asyncio.TimeoutError:
                self.logger.warning(f"RPC to {target_address} timed out after {current_timeout}s")
                self.rpc_stats["timeouts"] += 1

            except aiohttp.ClientError as e:
                self.logger.warning(f"Error sending RPC to {target_address}: {e}")
                self.rpc_stats["failures"] += 1

            # Retry with exponential backoff
            current_retry += 1
            if current_retry <= retries:
                self.rpc_stats["retries"] += 1
                current_timeout *= self.retry_backoff
                await asyncio.sleep(0.1 * current_retry)

        self.logger.warning(f"RPC {rpc_type} to {target_address} failed after {retries} retries")
        self._track_reachability(target_address, False)
        return None

    async def _send_simulated_rpc(self, target_address: str, rpc_type: str,
                                  payload: Dict[str, Any], timeout: float) -> Optional[Dict[str, Any]]:
        """
        Send an RPC in simulation mode

        Returns:
            Response payload or None if failed
        """
        if not self.simulated_network:
            self.logger.error("Simulated network not initialized")
            return None

        request = {
            "rpc_type": rpc_type,
            "sender_id": self.node_address,
            "payload": payload
        }

        try:
            return await asyncio.wait_for(
                self.simulated_network.deliver_message(self.node_address, target_address, request),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning(f"Simulated RPC {rpc_type} to {target_address} timed out")
            self.rpc_stats["timeouts"] += 1
            return None
        except (ConnectionError, TimeoutError, KeyError) as e:
            self.logger.warning(f"Simulated RPC {rpc_type} to {target_address} failed: {e}")
            self.rpc_stats["failures"] += 1
            return None

    def _track_reachability(self, address: str, reachable: bool):
        if address == self.node_address:
            return

        if reachable:
            self.connected_nodes.add(address)
            self.unreachable_nodes.discard(address)
        elif address not in self.unreachable_nodes:
            self.connected_nodes.discard(address)
            self.unreachable_nodes.add(address)
            self.logger.warning(f"Peer {address} unreachable, queued for reconnection")

    async def handle_incoming_message(self, sender_address: str,
                                      message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Handle incoming message in simulation mode

        Args:
            sender_address: Address of the sender node
            message: Message data

        Returns:
            Response data or None
        """
        rpc_type = message.get("rpc_type")
        payload = message.get("payload", {})

        self.rpc_stats["received"] += 1

        if rpc_type not in self.rpc_handlers:
            self.logger.warning(f"No handler for RPC type: {rpc_type}")
            return None

        handler = self.rpc_handlers[rpc_type]
        try:
            return await handler(payload)
        except Exception as e:
            self.logger.error(f"Error handling RPC: {e}")
            return None

    def get_network_status(self) -> Dict[str, Any]:
        """
        Get current network status information

        Returns:
            Dict with network status details
        """
        return {
            "node_id": self.node_address,
            "connected_nodes": sorted(self.connected_nodes),
            "unreachable_nodes": sorted(self.unreachable_nodes),
            "network_latency": self.network_latency,
            "rpc_stats": self.rpc_stats
        }

    def simulate_network_partition(self, partition_nodes: List[str], duration_sec: float = 30.0):
        """
        Simulate a network partition in simulation mode

        Args:
            partition_nodes: List of nodes to partition from this node
            duration_sec: Duration of partition in seconds
        """
        if not self.simulation_mode or not self.simulated_network:
            self.logger.error("Network partition simulation only available in simulation mode")
            return None

        self.logger.info(f"Simulating network partition from nodes: {partition_nodes}")
        return self.simulated_network.create_partition(self.node_address, partition_nodes, duration_sec)

    def simulate_message_loss(self, target_address: str, loss_probability: float):
        """
        Simulate message loss to a specific node in simulation mode

        Args:
            target_address: Target node address
            loss_probability: Probability of message loss (0.0-1.0)
        """
        if not self.simulation_mode or not self.simulated_network:
            self.logger.error("Message loss simulation only available in simulation mode")
            return

        self.logger.info(f"Simulating message loss to node {target_address}: {loss_probability:.2f}")
        self.simulated_network.set_link_loss(self.node_address, target_address, loss_probability)
