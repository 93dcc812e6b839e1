"""
src/paxoskv/supervisor/workers.py
=================================

Role workers run under a RoleSupervisor.
Each does its role's periodic work, stays up for a random time and then
crashes on purpose so that the supervisor has to bring it back.
"""

import asyncio
import logging


class RoleWorker:
    """Base worker: one unit of work, a random uptime, then a crash"""

    role = "worker"

    def __init__(self, store, failure_simulator):
        """
        Args:
            store: ReplicatedStore the worker acts on
            failure_simulator: FailureSimulator providing uptimes and crashes
        """
        self.store = store
        self.failure_simulator = failure_simulator
        self.logger = logging.getLogger(f"supervisor.worker.{self.role}.{store.address}")

    async def work(self):
        """One iteration of the role's work"""

    async def run(self):
        while True:
            await self.work()
            uptime = self.failure_simulator.worker_uptime(self.role)
            await asyncio.sleep(uptime)
            self.failure_simulator.crash_worker(self.role, uptime)


class AcceptorWorker(RoleWorker):
    """Acceptor calls are served by RPC handlers; the worker only crashes"""

    role = "acceptor"


class LearnerWorker(RoleWorker):
    """Applies accepted operations to the local map"""

    role = "learner"

    async def work(self):
        applied = await self.store.learn_committed()
        if applied:
            self.logger.debug(f"Learned {applied} operation(s)")


class ProposerWorker(RoleWorker):
    """Sends a no-op proposal while this node believes itself leader"""

    role = "proposer"

    async def work(self):
        if self.store.is_leader():
            await self.store.no_op_proposal()
