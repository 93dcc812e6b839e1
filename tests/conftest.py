"""
tests/conftest.py
================

Common test fixtures and configuration for the paxoskv test suite.
"""

import pytest
import logging

from paxoskv.consensus.acceptor import Acceptor
from paxoskv.simulation.failure_sim import FailureSimulator
from paxoskv.simulation.scenarios import create_simulated_cluster, stop_cluster


# Configure logging for tests
@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Set lower log level for tests
    logging.getLogger().setLevel(logging.WARNING)

    # Injected failures log at ERROR on every call
    logging.getLogger("paxos").setLevel(logging.CRITICAL)


@pytest.fixture
def failure_simulator():
    """FailureSimulator that never fails on its own; tests fail nodes explicitly"""
    return FailureSimulator({"rpc_failure_rate": 0.0, "seed": 42, "log_failures": False})


@pytest.fixture
async def cluster(failure_simulator):
    """Three started nodes on a zero-latency simulated network, no election run yet"""
    config = {
        "supervision": {"enabled": False},
        "network": {"base_timeout": 1.0, "reconnect_interval": 60.0}
    }
    network, nodes = await create_simulated_cluster(
        3, config, failure_simulator,
        network_config={"default_latency_ms": 0, "default_jitter_ms": 0, "seed": 7}
    )

    yield nodes

    await stop_cluster(network, nodes)


class LocalPeerClient:
    """Routes peer calls straight to in-process acceptors"""

    def __init__(self, acceptors):
        self.acceptors = acceptors

    async def prepare(self, address, instance_id, proposal_number, operation):
        return await self.acceptors[address].prepare(instance_id, proposal_number)

    async def accept(self, address, instance_id, proposal_number, operation):
        return await self.acceptors[address].accept(instance_id, proposal_number, operation)


@pytest.fixture
def acceptors(failure_simulator):
    """Three acceptors keyed by address"""
    return {
        address: Acceptor(address, {}, failure_simulator)
        for address in ("localhost:9001", "localhost:9002", "localhost:9003")
    }


@pytest.fixture
def local_peer_client(acceptors):
    return LocalPeerClient(acceptors)
