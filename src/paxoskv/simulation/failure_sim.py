"""
src/paxoskv/simulation/failure_sim.py
=====================================

Failure simulation for paxoskv.
Injects acceptor unavailability and role-worker crashes so that the
quorum and supervision paths are exercised continuously.
"""

import logging
import random
from typing import Dict, Any, Optional, Tuple

from paxoskv.errors import SimulatedCrash


# Default uptime ranges (seconds) before a role worker crashes
DEFAULT_UPTIMES = {
    "acceptor": (2.0, 5.0),
    "learner": (2.5, 6.0),
    "proposer": (3.0, 7.0)
}


class FailureSimulator:
    """
    Failure simulator for a replicated store node

    Features:
    - Random acceptor unavailability (per RPC)
    - Forced failure of a node's acceptor until recovered
    - Randomized role-worker uptimes followed by a simulated crash
    """

    def __init__(self, config: Dict[str, Any] = None):
        """
        Initialize the failure simulator

        Args:
            config: Configuration parameters
                - seed: Random seed for reproducibility
                - rpc_failure_rate: Probability an acceptor call fails (0.0-1.0)
                - uptime: Dict of role -> [min_sec, max_sec]
                - log_failures: Whether to log injected failures
        """
        self.config = config or {}
        self.logger = logging.getLogger("simulation.failure")

        # Configuration
        self.seed = self.config.get("seed")
        self.rpc_failure_rate = float(self.config.get("rpc_failure_rate", 0.2))
        self.log_failures = self.config.get("log_failures", True)

        self.uptimes: Dict[str, Tuple[float, float]] = dict(DEFAULT_UPTIMES)
        for role, bounds in self.config.get("uptime", {}).items():
            low, high = bounds
            self.uptimes[role] = (float(low), float(high))

        if not 0.0 <= self.rpc_failure_rate <= 1.0:
            raise ValueError(f"rpc_failure_rate must be within [0, 1]: {self.rpc_failure_rate}")

        # Private generator so a seed only affects injected faults
        self.random = random.Random(self.seed)

        # State
        self.failed_nodes = set()
        self.stats = {
            "rpc_failures": 0,
            "worker_crashes": 0
        }

        self.logger.info(f"Initialized FailureSimulator with config: {self.config}")

    def should_fail_rpc(self, node_id: Optional[str] = None) -> bool:
        """
        Decide whether an acceptor call on a node should simulate a failure

        Args:
            node_id: Node whose acceptor is handling the call

        Returns:
            True if the call must answer FAILURE
        """
        failed = node_id in self.failed_nodes or self.random.random() < self.rpc_failure_rate
        if failed:
            self.stats["rpc_failures"] += 1
        return failed

    def fail_node(self, node_id: str) -> bool:
        """
        Make every acceptor call on a node fail until it is recovered

        Returns:
            True if the node was not already failed
        """
        if node_id in self.failed_nodes:
            return False

        self.logger.info(f"Simulating failure of node {node_id}")
        self.failed_nodes.add(node_id)
        return True

    def recover_node(self, node_id: str) -> bool:
        """
        Recover a node failed with fail_node

        Returns:
            True if the node was failed
        """
        if node_id not in self.failed_nodes:
            return False

        self.logger.info(f"Simulating recovery of node {node_id}")
        self.failed_nodes.remove(node_id)
        return True

    def worker_uptime(self, role: str) -> float:
        """Random time in seconds a role worker stays up before crashing"""
        low, high = self.uptimes.get(role, DEFAULT_UPTIMES["acceptor"])
        return self.random.uniform(low, high)

    def crash_worker(self, role: str, uptime: float):
        """Raise the injected fault that terminates a role worker"""
        self.stats["worker_crashes"] += 1
        if self.log_failures:
            self.logger.debug(f"Crashing {role} worker after {uptime:.2f}s")
        raise SimulatedCrash(role, uptime)

    def get_status(self) -> Dict[str, Any]:
        return {
            "rpc_failure_rate": self.rpc_failure_rate,
            "failed_nodes": sorted(self.failed_nodes),
            "stats": dict(self.stats)
        }
