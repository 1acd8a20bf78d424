"""
Offline sync queue.

Local mutations that must reach the remote store are queued durably and
pushed in FIFO order whenever the device is online. Each action gets a
bounded number of attempts per cycle with exponential backoff between
them; an action that runs out of attempts stays queued for the next
cycle instead of being dropped.
"""

import asyncio
import time
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set, Tuple
from uuid import uuid4

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import get_settings
from ..exceptions import StoreError, SyncOfflineError, SyncTransportError
from ..integrations import SyncTransport
from ..models import ActionType, PendingAction, SyncReport, SyncStatus
from ..storage.base import DurableStore

logger = structlog.get_logger()

QUEUE = "sync_queue"

StatusListener = Callable[[SyncStatus, Optional[str]], None]


class SyncQueue:
    """
    Durable FIFO of pending remote mutations.

    Status moves idle -> syncing -> idle | error | offline. Only one
    cycle runs at a time; a request arriving mid-cycle is dropped.
    """

    def __init__(
        self,
        store: DurableStore,
        transport: SyncTransport,
        max_retries: Optional[int] = None,
        backoff_multiplier: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        debounce_seconds: Optional[float] = None,
        online: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.max_retries = settings.sync_max_retries if max_retries is None else max_retries
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

        self.backoff_multiplier = (
            settings.sync_backoff_multiplier if backoff_multiplier is None else backoff_multiplier
        )
        self.backoff_max_seconds = (
            settings.sync_backoff_max_seconds if backoff_max_seconds is None else backoff_max_seconds
        )
        self.debounce_seconds = (
            settings.sync_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.store = store
        self.transport = transport
        self.status = SyncStatus.IDLE if online else SyncStatus.OFFLINE
        self.last_error: Optional[str] = None
        self.last_report: Optional[SyncReport] = None

        self._online = online
        self._sleep = sleep
        self._in_progress = False
        self._listeners: List[StatusListener] = []
        self._debounce_task: Optional[asyncio.Task] = None
        self._last_stamp = 0

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._in_progress

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_status(self, status: SyncStatus, message: Optional[str] = None) -> None:
        self.status = status
        if status == SyncStatus.ERROR:
            self.last_error = message
        for listener in list(self._listeners):
            listener(status, message)

    # ------------------------------------------------------------------
    # Queue contents
    # ------------------------------------------------------------------

    def _next_id(self) -> str:
        self._last_stamp = max(time.time_ns(), self._last_stamp + 1)
        return f"{self._last_stamp:020d}-{uuid4().hex[:8]}"

    async def enqueue(
        self,
        action_type: ActionType,
        payload: dict,
        entity_id: Optional[str] = None,
    ) -> PendingAction:
        """Persist a mutation for later delivery."""
        action = PendingAction(
            id=self._next_id(),
            type=action_type,
            payload=payload,
            entity_id=entity_id,
        )
        await self.store.put(QUEUE, action.id, action.to_dict())
        logger.debug("Action queued", action_id=action.id, type=action_type.value, entity_id=entity_id)
        return action

    async def get_pending_actions(self) -> List[PendingAction]:
        """All queued actions, oldest first."""
        rows = await self.store.list_all(QUEUE)
        return sorted((PendingAction.from_dict(r) for r in rows), key=lambda a: a.id)

    async def get_failed_actions(self) -> List[PendingAction]:
        """Queued actions that have used up at least one full retry budget."""
        ceiling = max(1, self.max_retries)
        return [a for a in await self.get_pending_actions() if a.retry_count >= ceiling]

    async def pending_count(self) -> int:
        return len(await self.store.list_all(QUEUE))

    async def remove_action(self, action_id: str) -> bool:
        return await self.store.delete(QUEUE, action_id)

    async def clear_queue(self) -> int:
        """Administrative clear; the only way to drop undelivered actions."""
        actions = await self.get_pending_actions()
        deleted = await self.store.delete_many(QUEUE, [a.id for a in actions])
        logger.warning("Sync queue cleared", deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def set_online(self, online: bool) -> Optional[SyncReport]:
        """
        Record a connectivity change. Going offline takes effect at the
        next attempt; coming back online starts a fresh cycle.
        """
        was_online = self._online
        self._online = online
        if not online:
            if was_online:
                logger.info("Connectivity lost")
            self._set_status(SyncStatus.OFFLINE)
            return None
        if not was_online:
            logger.info("Connectivity restored")
            self._set_status(SyncStatus.IDLE)
            return await self.sync_now()
        return None

    def notify_local_change(self) -> asyncio.Task:
        """
        Debounced trigger: a cycle starts once local changes have been
        quiet for debounce_seconds. Must be called from a running loop.
        """
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.ensure_future(self._debounced_sync())
        return self._debounce_task

    async def _debounced_sync(self) -> Optional[SyncReport]:
        await self._sleep(self.debounce_seconds)
        return await self.sync_now()

    async def aclose(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
            try:
                await self._debounce_task
            except asyncio.CancelledError:
                pass
        self._debounce_task = None

    # ------------------------------------------------------------------
    # Sync cycle
    # ------------------------------------------------------------------

    async def sync_now(self) -> Optional[SyncReport]:
        """
        Run one sync cycle.

        Returns None when a cycle is already running (the request is
        dropped). Otherwise returns the cycle's report.
        """
        if self._in_progress:
            logger.debug("Sync already running; request dropped")
            return None

        if not self._online:
            self._set_status(SyncStatus.OFFLINE)
            report = SyncReport(status=SyncStatus.OFFLINE, finished_at=datetime.utcnow())
            self.last_report = report
            return report

        self._in_progress = True
        report = SyncReport(status=SyncStatus.SYNCING)
        self._set_status(SyncStatus.SYNCING)
        try:
            await self._run_cycle(report)
        except StoreError as e:
            logger.error("Sync queue store failure", error=str(e))
            report.status = SyncStatus.ERROR
            report.message = str(e)
        finally:
            self._in_progress = False

        report.finished_at = datetime.utcnow()
        self.last_report = report
        self._set_status(report.status, report.message)
        logger.info(
            "Sync cycle finished",
            status=report.status.value,
            synced=len(report.synced),
            failed=len(report.failed),
            held_back=len(report.held_back),
        )
        return report

    async def _run_cycle(self, report: SyncReport) -> None:
        actions = await self.get_pending_actions()
        blocked: Set[Tuple[ActionType, str]] = set()

        for position, action in enumerate(actions):
            key = (action.type, action.entity_id) if action.entity_id else None
            if key is not None and key in blocked:
                report.held_back.append(action.id)
                continue

            try:
                delivered = await self._deliver(action)
            except SyncOfflineError:
                logger.info("Went offline during sync", action_id=action.id)
                report.held_back.extend(a.id for a in actions[position:])
                report.status = SyncStatus.OFFLINE
                return

            if delivered:
                report.synced.append(action.id)
            else:
                report.failed.append(action.id)
                if key is not None:
                    blocked.add(key)

        if report.failed:
            report.status = SyncStatus.ERROR
            report.message = f"{len(report.failed)} action(s) failed to sync"
        else:
            report.status = SyncStatus.IDLE

        if not self._online:
            # connectivity dropped while the last action was in flight
            report.status = SyncStatus.OFFLINE

    async def _deliver(self, action: PendingAction) -> bool:
        """
        Attempt one action up to max_retries times with exponential
        backoff. Returns False when every attempt failed.

        Raises:
            SyncOfflineError: If connectivity is lost; the action stays queued
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_retries)),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max_seconds),
            retry=retry_if_exception_type(SyncTransportError),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt(action)
        except SyncTransportError as e:
            logger.warning(
                "Action failed to sync",
                action_id=action.id,
                type=action.type.value,
                retry_count=action.retry_count,
                error=str(e),
            )
            return False
        return True

    async def _attempt(self, action: PendingAction) -> None:
        if not self._online:
            raise SyncOfflineError("Offline")

        try:
            applied = await self.transport.apply(action)
            error = None if applied else "Remote store rejected the action"
        except SyncOfflineError:
            raise
        except Exception as e:
            # any transport failure counts against the retry budget
            error = str(e) or type(e).__name__

        if error is None:
            await self.store.delete(QUEUE, action.id)
            return

        action.retry_count += 1
        action.last_error = error
        await self.store.put(QUEUE, action.id, action.to_dict())
        raise SyncTransportError(error)
