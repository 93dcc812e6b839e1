"""
src/paxoskv/supervisor/role_supervisor.py
=========================================

Supervision of a single role worker.
Periodically checks the worker task and relaunches it from its factory
whenever it has terminated, normally or not.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional


class RoleSupervisor:
    """
    Restart-on-termination harness for one role

    Owns the current worker task and a monitor task. The monitor wakes every
    check_interval seconds; a finished worker is logged and replaced, so a
    role is never without a worker for longer than one interval.
    """

    def __init__(self, role_name: str, worker_factory: Callable[[], Awaitable[Any]],
                 check_interval: float = 1.0):
        """
        Args:
            role_name: Name of the role, e.g. "Acceptor"
            worker_factory: Returns a fresh worker coroutine on each call
            check_interval: Seconds between health checks
        """
        self.role_name = role_name
        self.worker_factory = worker_factory
        self.check_interval = check_interval

        self.logger = logging.getLogger(f"supervisor.{role_name}")

        self.current_task: Optional[asyncio.Task] = None
        self.monitor_task: Optional[asyncio.Task] = None
        self.running = False
        self.restart_count = 0
        self.last_failure: Optional[str] = None

    async def start(self):
        """Launch the first worker and the health-check monitor"""
        self.logger.info(f"Starting supervisor for {self.role_name}, "
                         f"health check every {self.check_interval}s")
        self.running = True
        self._launch_worker()
        self.monitor_task = asyncio.create_task(self._monitor())

    async def stop(self):
        """Cancel the monitor and the running worker"""
        self.running = False

        for task in (self.monitor_task, self.current_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    self.logger.debug(f"{self.role_name} task ended with {e!r} during stop")

        # A worker that crashed since the last check still has its error pending
        if self.current_task is not None and self.current_task.done() and not self.current_task.cancelled():
            self.last_failure = self._describe_termination(self.current_task)

        self.monitor_task = None
        self.current_task = None

    def _launch_worker(self):
        self.current_task = asyncio.create_task(self.worker_factory())

    async def _monitor(self):
        while self.running:
            try:
                await asyncio.sleep(self.check_interval)
                await self.check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in {self.role_name} health check: {e}")

    async def check(self) -> bool:
        """
        Run one health check

        Returns:
            True if the worker had terminated and was restarted
        """
        task = self.current_task
        if task is not None and not task.done():
            return False

        self.last_failure = self._describe_termination(task)
        self.logger.warning(f"[{self.role_name}] worker terminated ({self.last_failure}); restarting...")

        self.restart_count += 1
        self._launch_worker()
        return True

    def _describe_termination(self, task: Optional[asyncio.Task]) -> str:
        if task is None:
            return "not started"
        if task.cancelled():
            return "cancelled"
        # Retrieving the exception also marks it handled for the event loop
        error = task.exception()
        if error is None:
            return "exited"
        return str(error)

    def is_alive(self) -> bool:
        return self.current_task is not None and not self.current_task.done()

    def get_status(self) -> Dict[str, Any]:
        return {
            "role": self.role_name,
            "alive": self.is_alive(),
            "restarts": self.restart_count,
            "last_failure": self.last_failure
        }
