"""
src/paxoskv/election/leader_elector.py
======================================

Ring-based leader election.
Each node periodically sends a token around a fixed ring of addresses;
when its own token comes back it elects the smallest address seen.
"""

import asyncio
import logging
from typing import List, Optional

from paxoskv.election.election_message import ElectionMessage


class LeaderElector:
    """
    Periodic ring election for one node

    There is no term or epoch: a round started while another is in flight
    simply interleaves with it, and each node only updates its leader when
    its own token returns.
    """

    def __init__(self, ring: List[str], self_index: int, peer_client,
                 election_interval: float = 5.0):
        """
        Args:
            ring: Node addresses in ring order, identical on every node
            self_index: Position of this node in the ring
            peer_client: PeerClient used to forward tokens
            election_interval: Seconds between election rounds
        """
        if not 0 <= self_index < len(ring):
            raise ValueError(f"self_index {self_index} outside ring of size {len(ring)}")

        self.ring = list(ring)
        self.self_index = self_index
        self.address = self.ring[self_index]
        self.peer_client = peer_client
        self.election_interval = election_interval

        self.logger = logging.getLogger(f"election.{self.address}")

        self.leader_address: Optional[str] = None
        self.election_task = None
        self.running = False

        self.stats = {
            "rounds_started": 0,
            "rounds_decided": 0,
            "tokens_forwarded": 0,
            "forward_failures": 0
        }

    @property
    def successor(self) -> str:
        return self.ring[(self.self_index + 1) % len(self.ring)]

    async def start(self):
        """Start the periodic election task"""
        self.logger.info(f"Starting leader elector, interval {self.election_interval}s")
        self.running = True
        self.election_task = asyncio.create_task(self._election_loop())

    async def stop(self):
        """Stop the periodic election task"""
        self.running = False

        if self.election_task:
            self.election_task.cancel()
            try:
                await self.election_task
            except asyncio.CancelledError:
                pass
            self.election_task = None

    async def _election_loop(self):
        """Start a round immediately, then once per interval"""
        while self.running:
            try:
                await self.start_election()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Election round failed: {e}")

            await asyncio.sleep(self.election_interval)

    async def start_election(self):
        """Launch one election token from this node"""
        message = ElectionMessage(self.address, self.leader_address)
        message.add_candidate(self.address)

        self.stats["rounds_started"] += 1
        self.logger.debug(f"Starting election round with {message}")
        await self._forward(message)

    async def receive(self, message: ElectionMessage) -> Optional[str]:
        """
        Handle an incoming election token

        Args:
            message: The token received from the ring predecessor

        Returns:
            This node's leader address after handling the token
        """
        message.add_candidate(self.address)

        if message.back_to_origin(self.address):
            self.leader_address = message.select_leader()
            self.stats["rounds_decided"] += 1
            self.logger.info(f"New leader elected: {self.leader_address}")
        else:
            await self._forward(message)

        return self.leader_address

    async def _forward(self, message: ElectionMessage):
        successor = self.successor
        delivered = await self.peer_client.receive_election(successor, message)

        if delivered:
            self.stats["tokens_forwarded"] += 1
        else:
            self.stats["forward_failures"] += 1
            self.logger.error(f"Election forward to {successor} failed")

    def get_leader(self) -> Optional[str]:
        return self.leader_address

    def is_leader(self) -> bool:
        return self.leader_address == self.address
