"""Background reclamation of expired capability records."""

import asyncio
import logging
from typing import List, Optional

from .registry import CapabilityRecord, CapabilityRegistry

logger = logging.getLogger("qcap_registry.sweeper")


class RegistrySweeper:
    """
    Periodically sweeps a registry on the running event loop.

    The delay between passes follows the shortest live TTL (half of it),
    never exceeding ``interval`` seconds.
    """

    def __init__(self, registry: CapabilityRegistry, interval: float = 30, publisher=None):
        """
        Initialize sweeper.

        Args:
            registry: Registry to sweep
            interval: Upper bound on seconds between passes
            publisher: Optional RegistryEventPublisher for expiry events
        """
        self.registry = registry
        self.interval = interval
        self.publisher = publisher
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> List[CapabilityRecord]:
        """Run a single sweep pass and publish an event per reclaimed record."""
        expired = self.registry.sweep()
        if self.publisher:
            for record in expired:
                await self.publisher.publish("capability.expired", record)
        return expired

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sweep pass failed: {e}")
            await asyncio.sleep(self.registry.suggested_sweep_interval(self.interval))

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="qcap-registry-sweeper")
        logger.info(f"Registry sweeper started (max interval: {self.interval}s)")

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Registry sweeper stopped")
