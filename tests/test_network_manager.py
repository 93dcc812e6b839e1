"""
tests/test_network_manager.py
===========================

Unit tests for the network manager implementation.
"""

import pytest
import asyncio
from unittest.mock import AsyncMock, MagicMock

from paxoskv.networking.network_manager import NetworkManager
from paxoskv.simulation.network_sim import SimulatedNetwork


RING = ["localhost:8001", "localhost:8002", "localhost:8003"]


@pytest.fixture
async def simulated_network():
    """Zero-latency simulated network"""
    network = SimulatedNetwork({"default_latency_ms": 0, "default_jitter_ms": 0})
    await network.start()
    yield network
    await network.stop()


@pytest.fixture
def network_manager(simulated_network):
    """Fixture to create a NetworkManager instance for testing"""
    return NetworkManager(
        node_address="localhost:8001",
        peer_addresses=RING,
        config={"reconnect_interval": 0.05},
        simulation_mode=True,
        simulated_network=simulated_network
    )


@pytest.mark.asyncio
async def test_network_manager_initialization(network_manager):
    """Test that a NetworkManager initializes correctly"""
    assert network_manager.node_id == "localhost:8001"
    assert network_manager.simulation_mode is True
    assert network_manager.base_timeout == 0.5
    assert len(network_manager.rpc_handlers) == 0


@pytest.mark.asyncio
async def test_network_manager_register_handlers(network_manager):
    """Test registering RPC handlers"""
    handler1 = AsyncMock()
    handler2 = AsyncMock()

    network_manager.register_handlers({"test_rpc1": handler1, "test_rpc2": handler2})

    assert network_manager.rpc_handlers["test_rpc1"] == handler1
    assert network_manager.rpc_handlers["test_rpc2"] == handler2
    assert "ping" in network_manager.rpc_handlers


@pytest.mark.asyncio
async def test_network_manager_start_stop(network_manager, simulated_network):
    """Test starting and stopping registers and unregisters the node"""
    await network_manager.start()
    assert "localhost:8001" in simulated_network.nodes

    await network_manager.stop()
    assert "localhost:8001" not in simulated_network.nodes
    assert network_manager.reconnect_task is None


@pytest.mark.asyncio
async def test_network_manager_owns_default_network():
    """Test a manager without a network creates and stops its own"""
    manager = NetworkManager("localhost:8001", ["localhost:8001"], simulation_mode=True)

    await manager.start()
    network = manager.simulated_network
    assert network is not None and network.running

    await manager.stop()
    assert not network.running


@pytest.mark.asyncio
async def test_network_manager_send_rpc_simulation(network_manager):
    """Test sending RPC in simulation mode"""
    await network_manager.start()

    expected_result = {"status": "ok"}
    network_manager.simulated_network.deliver_message = AsyncMock(return_value=expected_result)

    result = await network_manager.send_rpc("localhost:8002", "test_rpc", {"test": "data"})

    assert result == expected_result
    network_manager.simulated_network.deliver_message.assert_awaited_once_with(
        "localhost:8001", "localhost:8002",
        {"rpc_type": "test_rpc", "sender_id": "localhost:8001", "payload": {"test": "data"}}
    )
    assert "localhost:8002" in network_manager.connected_nodes

    await network_manager.stop()


@pytest.mark.asyncio
async def test_send_rpc_between_managers(network_manager, simulated_network):
    """Test an RPC reaches the handler registered on the peer"""
    peer = NetworkManager("localhost:8002", RING, simulation_mode=True,
                          simulated_network=simulated_network)
    peer.register_handlers({"echo": AsyncMock(return_value={"echo": "hi"})})
    await peer.start()
    await network_manager.start()

    result = await network_manager.send_rpc("localhost:8002", "echo", {"text": "hi"})

    assert result == {"echo": "hi"}
    peer.rpc_handlers["echo"].assert_awaited_once_with({"text": "hi"})

    await network_manager.stop()
    await peer.stop()


@pytest.mark.asyncio
async def test_send_rpc_to_missing_node(network_manager):
    """Test an unregistered target yields None and is marked unreachable"""
    await network_manager.start()

    result = await network_manager.send_rpc("localhost:8009", "ping", {})

    assert result is None
    assert "localhost:8009" in network_manager.unreachable_nodes

    await network_manager.stop()


@pytest.mark.asyncio
async def test_send_rpc_timeout(network_manager, simulated_network):
    """Test a slow peer is reported as None after the timeout"""
    async def slow_handler(payload):
        await asyncio.sleep(1.0)

    peer = NetworkManager("localhost:8002", RING, simulation_mode=True,
                          simulated_network=simulated_network)
    peer.register_handlers({"slow": slow_handler})
    await peer.start()
    await network_manager.start()

    result = await network_manager.send_rpc("localhost:8002", "slow", {}, timeout=0.05)

    assert result is None
    assert network_manager.rpc_stats["timeouts"] == 1

    await network_manager.stop()
    await peer.stop()


@pytest.mark.asyncio
async def test_handle_incoming_message(network_manager):
    """Test handling incoming messages in simulation mode"""
    handler = AsyncMock(return_value={"status": "ok"})
    network_manager.register_handlers({"test_rpc": handler})

    result = await network_manager.handle_incoming_message(
        "localhost:8002", {"rpc_type": "test_rpc", "payload": {"test": "data"}}
    )

    assert result == {"status": "ok"}
    handler.assert_awaited_once_with({"test": "data"})


@pytest.mark.asyncio
async def test_handle_incoming_message_errors(network_manager):
    """Test unknown RPC types and failing handlers answer None"""
    network_manager.register_handlers({"boom": AsyncMock(side_effect=RuntimeError("boom"))})

    assert await network_manager.handle_incoming_message("x", {"rpc_type": "nope"}) is None
    assert await network_manager.handle_incoming_message("x", {"rpc_type": "boom"}) is None


@pytest.mark.asyncio
async def test_unreachable_peers_reconnect(network_manager, simulated_network):
    """Test peers missing at start are reconnected in the background"""
    await network_manager.start()
    assert network_manager.unreachable_nodes == {"localhost:8002", "localhost:8003"}

    peers = [
        NetworkManager(address, RING, simulation_mode=True, simulated_network=simulated_network)
        for address in ("localhost:8002", "localhost:8003")
    ]
    for peer in peers:
        await peer.start()

    await asyncio.sleep(0.2)

    assert network_manager.unreachable_nodes == set()
    assert network_manager.connected_nodes == {"localhost:8002", "localhost:8003"}
    assert network_manager.rpc_stats["reconnections"] == 2

    await network_manager.stop()
    for peer in peers:
        await peer.stop()


@pytest.mark.asyncio
async def test_network_manager_ping_handler(network_manager):
    """Test the built-in ping handler"""
    await network_manager.start()

    result = await network_manager.rpc_handlers["ping"]({})

    assert result["status"] == "ok"
    assert result["node_id"] == "localhost:8001"

    await network_manager.stop()


@pytest.mark.asyncio
async def test_network_manager_get_network_status(network_manager):
    """Test getting network status"""
    await network_manager.start()

    status = network_manager.get_network_status()

    assert status["node_id"] == "localhost:8001"
    assert status["unreachable_nodes"] == ["localhost:8002", "localhost:8003"]
    assert "rpc_stats" in status

    await network_manager.stop()


@pytest.mark.asyncio
async def test_network_manager_simulate_network_partition(network_manager, simulated_network):
    """Test a partition drops messages between the two sides"""
    peer = NetworkManager("localhost:8002", RING, simulation_mode=True,
                          simulated_network=simulated_network)
    await peer.start()
    await network_manager.start()

    partition_id = network_manager.simulate_network_partition(["localhost:8002"], 10.0)

    assert await network_manager.send_rpc("localhost:8002", "ping", {}) is None
    assert await peer.send_rpc("localhost:8001", "ping", {}) is None

    simulated_network.remove_partition(partition_id)
    assert (await network_manager.send_rpc("localhost:8002", "ping", {}))["status"] == "ok"

    await network_manager.stop()
    await peer.stop()


@pytest.mark.asyncio
async def test_network_manager_simulate_message_loss(network_manager):
    """Test message loss is set on the outgoing link"""
    await network_manager.start()
    network_manager.simulated_network.set_link_loss = MagicMock()

    network_manager.simulate_message_loss("localhost:8002", 0.5)

    network_manager.simulated_network.set_link_loss.assert_called_once_with(
        "localhost:8001", "localhost:8002", 0.5
    )

    await network_manager.stop()


@pytest.mark.asyncio
async def test_partition_requires_simulation_mode():
    manager = NetworkManager("localhost:8001", RING)

    assert manager.simulate_network_partition(["localhost:8002"]) is None
