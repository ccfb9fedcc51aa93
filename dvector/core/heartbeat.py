"""
Heartbeat - cooperative periodic task runner on the event loop.
Keeps the vector cache fresh by ticking registered async tasks at fixed intervals.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional

from dvector.util.logging import logger

TaskFunc = Callable[[], Awaitable[object]]


class Heartbeat:
    """
    Runs registered async tasks when their interval has elapsed.

    A failing task is logged and retried on its next interval; it never stops
    the loop or the other tasks.
    """

    def __init__(self, tick_sec: float = 0.1, min_interval_sec: float = 1.0):
        self.tick_sec = tick_sec
        self.min_interval_sec = min_interval_sec
        self.tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run}
        self.running = False
        self.started_at: Optional[float] = None
        self._loop_task: Optional[asyncio.Task] = None

    def register_task(self, name: str, interval_sec: float, func: TaskFunc):
        """
        Register a task to be executed periodically.

        Args:
            name: Unique task identifier
            interval_sec: How often to run this task in seconds
            func: Async callable taking no arguments
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec < self.min_interval_sec:
            raise ValueError(f"Interval must be >= {self.min_interval_sec} second(s): {interval_sec}")

        self.tasks[name] = {
            "func": func,
            "interval": interval_sec,
            "last_run": None
        }

        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")

    def unregister_task(self, name: str):
        """Remove a task from the registry."""
        if name in self.tasks:
            del self.tasks[name]
            logger.info(f"Unregistered heartbeat task '{name}'")

    def list_tasks(self) -> List[str]:
        """Return list of registered task names."""
        return list(self.tasks.keys())

    async def start(self):
        """Start the heartbeat loop in the background."""
        if self.running:
            raise RuntimeError("Heartbeat already running")

        self.running = True
        self.started_at = time.monotonic()
        self._loop_task = asyncio.create_task(self._run())
        logger.info(f"Starting heartbeat loop with tasks: {self.list_tasks()}")

    async def _run(self):
        while self.running:
            for name, task_info in list(self.tasks.items()):
                if self.should_run_task(name, task_info):
                    try:
                        await self.run_task(name, task_info)
                    except Exception as e:
                        # Error isolation - logged in run_task, loop continues
                        logger.debug(f"Heartbeat task '{name}' error isolated: {e}")

            await asyncio.sleep(self.tick_sec)

    async def stop(self):
        """Stop the heartbeat loop and wait for it to exit."""
        if not self.running:
            return

        self.running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        logger.info("Heartbeat stopped")

    def should_run_task(self, name: str, task_info: Dict) -> bool:
        """Check if a task should run this cycle."""
        if task_info["last_run"] is None:
            return True  # Run immediately if never run

        elapsed = time.monotonic() - task_info["last_run"]
        return elapsed >= task_info["interval"]

    async def run_task(self, name: str, task_info: Dict):
        """Execute a task and record timing. Failures still count as a run."""
        start_time = time.monotonic()

        try:
            await task_info["func"]()
        except Exception as e:
            end_time = time.monotonic()
            task_info["last_run"] = end_time
            logger.log_heartbeat_task(name, start_time, end_time, "failed", {"error": str(e)[:100]})
            raise RuntimeError(f"Task '{name}' failed after {end_time - start_time:.2f}s: {e}") from e

        end_time = time.monotonic()
        task_info["last_run"] = end_time
        logger.log_heartbeat_task(name, start_time, end_time)

    def reset_task(self, name: str):
        """Reset a task's last_run time to force immediate execution."""
        if name in self.tasks:
            self.tasks[name]["last_run"] = None

    def get_status(self) -> Dict:
        """Return current heartbeat status for monitoring."""
        return {
            "status": "running" if self.running else "stopped",
            "tasks": {
                name: {
                    "interval_sec": info["interval"],
                    "last_run": info["last_run"],
                    "next_run": info["last_run"] + info["interval"] if info["last_run"] else None
                }
                for name, info in self.tasks.items()
            },
            "uptime_sec": time.monotonic() - self.started_at if self.running and self.started_at else 0.0
        }
