"""
File: s3ping/heartbeat.py
Periodic advertisement and discovery rounds for one node.

Writes the node's own record and reads the group every `interval` seconds.
Registry calls block on network round trips, so they run in worker threads.
"""
import asyncio
import time
from typing import Callable, Collection, List, Optional
from uuid import UUID

import structlog

from s3ping.models import PeerRecord, Responses
from s3ping.registry import Discovery

log = structlog.get_logger(__name__)


class DiscoveryHeartbeat:
    """
    Drives a Discovery backend on a fixed interval.
    """

    def __init__(self, registry: Discovery, group_name: str, local_record: PeerRecord,
                 interval: float = 60.0, members: Optional[Collection[UUID]] = None):
        """
        Args:
            registry: Discovery backend
            group_name: Group to advertise in and read
            local_record: Record of this node
            interval: Seconds between rounds
            members: Optional filter passed to read_all
        """
        self.registry = registry
        self.group_name = group_name
        self.local_record = local_record
        self.interval = interval
        self.members = members
        self.callbacks: List[Callable[[Responses], None]] = []
        self.last_responses: Optional[Responses] = None
        self.rounds = 0
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None

    def set_coordinator(self, coordinator: bool) -> None:
        """Changes the coordinator flag advertised from the next round on."""
        self.local_record = self.local_record.model_copy(update={"coordinator": coordinator})

    def register_callback(self, callback: Callable[[Responses], None]) -> None:
        """Registers a function called with the responses of every round."""
        self.callbacks.append(callback)

    async def run_once(self) -> Responses:
        """
        Runs one round: write the local record, then read the group.

        Returns:
            Responses: Records found in this round
        """
        await asyncio.to_thread(self.registry.write, [self.local_record], self.group_name)

        responses = Responses()
        await asyncio.to_thread(self.registry.read_all, self.members, self.group_name, responses)

        self.last_responses = responses
        self.rounds += 1
        log.debug("Discovery round completed", group=self.group_name, round=self.rounds,
                  found=len(responses), coordinators=len(responses.coordinators()))

        for callback in self.callbacks:
            try:
                callback(responses)
            except Exception:
                log.error("Error in discovery callback", group=self.group_name, exc_info=True)
        return responses

    async def _heartbeat_loop(self) -> None:
        log.info("Starting discovery loop", group=self.group_name, interval=self.interval)

        while self.running:
            start_time = time.time()
            try:
                await self.run_once()
            except Exception:
                log.error("Error in discovery round", group=self.group_name, exc_info=True)

            elapsed = time.time() - start_time
            try:
                # Woken early by stop()
                await asyncio.wait_for(self._wakeup.wait(), max(0.0, self.interval - elapsed))
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        """Starts the loop on the running event loop."""
        if not self.running:
            self.running = True
            self._wakeup = asyncio.Event()
            self._task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        """
        Stops the loop; the node's object stays in the bucket.
        A round in progress is allowed to finish.
        """
        self.running = False
        if self._task is not None:
            self._wakeup.set()
            await self._task
            self._task = None
        log.info("Discovery loop stopped", group=self.group_name)

    async def leave(self) -> None:
        """Stops the loop and removes the node's object from the group."""
        await self.stop()
        await asyncio.to_thread(self.registry.remove, self.group_name, self.local_record.address)
        log.info("Left group", group=self.group_name, address=str(self.local_record.address))
