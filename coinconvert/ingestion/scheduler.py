from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from coinconvert.models import RefreshInterval, ScheduleState
from coinconvert.storage import KeyValueStore

logger = logging.getLogger(__name__)

JobHandler = Callable[[], Awaitable[Any]]


class RefreshScheduler:
    """Cron-like recurring jobs whose state lives in the key/value store.

    Registration is idempotent per hook. A tick runs every bound job whose
    ``next_run`` has passed; missed intervals collapse into a single run and
    the next run is moved to the first interval boundary after now.
    """

    KEY_PREFIX = "schedule_"

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self.clock = clock
        self._handlers: Dict[str, JobHandler] = {}

    def _key(self, hook: str) -> str:
        return f"{self.KEY_PREFIX}{hook}"

    def get_state(self, hook: str) -> Optional[ScheduleState]:
        raw = self.store.get(self._key(hook))
        if raw is None:
            return None
        try:
            return ScheduleState.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding unreadable schedule state for %s", hook)
            return None

    def next_scheduled(self, hook: str) -> Optional[int]:
        state = self.get_state(hook)
        return state.next_run if state else None

    def schedule(self, hook: str, interval: RefreshInterval, first_run: Optional[int] = None) -> bool:
        """Register ``hook``; returns False when it is already scheduled."""
        if self.get_state(hook) is not None:
            return False
        state = ScheduleState(
            hook=hook,
            next_run=int(self.clock()) if first_run is None else first_run,
            interval=interval.seconds,
            label=interval.label,
        )
        self.store.set(self._key(hook), state)
        logger.info("Scheduled %s (%s), first run at %s", hook, interval.label, state.next_run)
        return True

    def unschedule(self, hook: str) -> bool:
        return self.store.delete(self._key(hook))

    def bind(self, hook: str, handler: JobHandler) -> None:
        self._handlers[hook] = handler

    def _advance(self, state: ScheduleState, now: int) -> ScheduleState:
        next_run = state.next_run + state.interval
        if next_run <= now:
            next_run = now + (state.interval - (now - state.next_run) % state.interval)
        return state.model_copy(update={"next_run": next_run})

    async def run_pending(self) -> List[str]:
        """Run every bound job that is due; returns the hooks that ran."""
        ran: List[str] = []
        for hook, handler in list(self._handlers.items()):
            state = self.get_state(hook)
            now = int(self.clock())
            if state is None or state.next_run > now:
                continue

            # Reschedule before running so a crashing job still fires next interval.
            self.store.set(self._key(hook), self._advance(state, now))
            try:
                await handler()
            except Exception:  # noqa: BLE001
                logger.exception("Scheduled job %s failed", hook)
            ran.append(hook)
        return ran

    async def run_forever(self, tick_seconds: float) -> None:
        logger.info("Starting scheduler loop with tick %s seconds", tick_seconds)
        while True:
            start = time.monotonic()
            await self.run_pending()
            elapsed = time.monotonic() - start
            await asyncio.sleep(max(0, tick_seconds - elapsed))
