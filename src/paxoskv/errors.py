"""
src/paxoskv/errors.py
=====================

Exception types raised by the replicated key-value store.
"""

from typing import Optional


class PaxosKVError(Exception):
    """Base class for all store errors"""


class InvalidRequestError(PaxosKVError):
    """Malformed client request: empty key/value or unknown key on delete"""


class NotLeaderError(PaxosKVError):
    """A write was sent to a node that does not believe itself leader"""

    def __init__(self, address: str, leader: Optional[str] = None):
        self.address = address
        self.leader = leader
        super().__init__(f"Not leader: {address} (current leader: {leader})")


class ConsensusError(PaxosKVError):
    """A proposal round failed to reach quorum in prepare or accept"""


class SimulatedCrash(RuntimeError):
    """Injected fault used to terminate a supervised role worker"""

    def __init__(self, role: str, uptime: float):
        self.role = role
        self.uptime = uptime
        super().__init__(f"Simulated {role} failure after {uptime * 1000:.0f}ms")
