"""Single-loop daily scheduler for automated query configs."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from config import get_scheduler_settings
from core import QueryConfig, RunResult
from storage import QueryConfigStore
from utils.logger import get_scheduler_logger

from .executor import IngestionExecutor, ProgressSink
from .inflight import InFlightRegistry

logger = get_scheduler_logger()

Clock = Callable[[], datetime]


def compute_next_fire(now: datetime, hour: int, minute: int) -> datetime:
    """Today at hour:minute if still ahead of ``now``, otherwise tomorrow."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DailyScheduler:
    """
    One tick loop over a table of ``{config_id: next_fire}``.

    The tick only decides and hands off: runs execute as independent tasks,
    a config whose previous run is still in flight is skipped, and
    ``execution_count``/``last_execution_date`` are written here only after a
    completed (or partially successful) run.
    """

    def __init__(
        self,
        config_store: QueryConfigStore,
        executor: IngestionExecutor,
        *,
        registry: Optional[InFlightRegistry] = None,
        clock: Optional[Clock] = None,
        tick_interval: Optional[float] = None,
        tolerance_seconds: Optional[float] = None,
        progress: Optional[ProgressSink] = None,
    ):
        settings = get_scheduler_settings()
        self.config_store = config_store
        self.executor = executor
        self.registry = registry if registry is not None else InFlightRegistry()
        self.clock = clock or datetime.now
        self.tick_interval = float(tick_interval if tick_interval is not None else settings.tick_interval)
        self.tolerance_seconds = float(
            tolerance_seconds if tolerance_seconds is not None else settings.tolerance_seconds
        )
        self.progress = progress

        self._next_fire: Dict[str, datetime] = {}
        self._times: Dict[str, Tuple[int, int]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}
        self._stop = asyncio.Event()

    @property
    def fire_window(self) -> float:
        return self.tolerance_seconds + self.tick_interval

    # ---- schedule table ----------------------------------------------------

    def refresh(
        self,
        now: Optional[datetime] = None,
        configs: Optional[List[QueryConfig]] = None,
    ) -> Dict[str, QueryConfig]:
        """
        Sync the table with enabled configs; new or edited entries are recomputed from now.

        ``configs`` is a pre-loaded ``list_automated(enabled_only=True)`` result;
        when omitted the store is read on the calling thread.
        """
        now = now or self.clock()
        if configs is None:
            configs = self.config_store.list_automated(enabled_only=True)
        by_id = {config.id: config for config in configs}

        for config_id in list(self._next_fire):
            if config_id not in by_id:
                self._forget(config_id)

        for config_id, config in by_id.items():
            hour_minute = config.schedule.hour_minute
            if self._times.get(config_id) != hour_minute:
                self._times[config_id] = hour_minute
                self._next_fire[config_id] = compute_next_fire(now, *hour_minute)
                logger.debug(f"[{config_id[:8]}] next fire {self._next_fire[config_id].isoformat()}")
        return by_id

    def invalidate(self, config_id: str) -> None:
        """Drop a cached entry so the next refresh recomputes it (enable/disable/edit)."""
        self._forget(config_id)

    def _forget(self, config_id: str) -> None:
        self._next_fire.pop(config_id, None)
        self._times.pop(config_id, None)

    def next_fire(self, config_id: str) -> Optional[datetime]:
        return self._next_fire.get(config_id)

    def schedule_table(self) -> Dict[str, datetime]:
        return dict(self._next_fire)

    # ---- tick --------------------------------------------------------------

    def tick(self, now: Optional[datetime] = None, configs: Optional[List[QueryConfig]] = None) -> List[str]:
        """
        Fire every config whose next-fire instant was reached within the window.

        Returns the ids of configs whose run was started. Never raises.
        """
        now = now or self.clock()
        try:
            by_id = self.refresh(now, configs)
        except Exception as e:
            logger.error(f"Scheduler refresh failed: {e}")
            return []

        fired: List[str] = []
        for config_id, next_fire in list(self._next_fire.items()):
            lag = (now - next_fire).total_seconds()
            if lag < 0:
                continue

            config = by_id.get(config_id)
            self._next_fire[config_id] = compute_next_fire(now, *self._times[config_id])

            if config is None:
                continue
            if lag > self.fire_window:
                logger.warning(
                    f"[{config_id[:8]}] missed occurrence {next_fire.isoformat()} by {lag:.0f}s, "
                    f"next at {self._next_fire[config_id].isoformat()}"
                )
                continue

            try:
                if self._launch(config, next_fire):
                    fired.append(config_id)
            except Exception as e:
                logger.error(f"[{config_id[:8]}] failed to start run: {e}")
        return fired

    def _launch(self, config: QueryConfig, fire_time: datetime) -> bool:
        if not self.registry.try_acquire(config.id):
            logger.info(f"[{config.id[:8]}] previous run still in flight, skipping this occurrence")
            return False

        logger.info(f"[{config.id[:8]}] firing scheduled run for {config.query!r}")
        cancel_event = asyncio.Event()
        try:
            task = asyncio.get_running_loop().create_task(self._run_and_record(config, fire_time, cancel_event))
        except BaseException:
            self.registry.release(config.id)
            raise
        self._tasks[config.id] = task
        self._cancel_events[config.id] = cancel_event
        return True

    async def _run_and_record(
        self,
        config: QueryConfig,
        fire_time: datetime,
        cancel_event: asyncio.Event,
    ) -> Optional[RunResult]:
        try:
            result = await self.executor.run(config, self.progress, cancel_event)
            if result.is_completed_attempt:
                await asyncio.to_thread(self.config_store.record_execution, config.id, fire_time)
            else:
                logger.warning(
                    f"[{config.id[:8]}] scheduled run ended {result.state.value}"
                    + (f": {result.abort_reason}" if result.abort_reason else "")
                )
            return result
        except asyncio.CancelledError:
            logger.info(f"[{config.id[:8]}] scheduled run cancelled")
            raise
        except Exception as e:
            logger.exception(f"[{config.id[:8]}] scheduled run crashed: {e}")
            return None
        finally:
            self._tasks.pop(config.id, None)
            self._cancel_events.pop(config.id, None)
            self.registry.release(config.id)

    # ---- lifecycle ---------------------------------------------------------

    def cancel(self, config_id: str) -> bool:
        """Ask an in-flight scheduled run to stop at its next checkpoint."""
        event = self._cancel_events.get(config_id)
        if event is None:
            return False
        event.set()
        return True

    def running(self) -> List[str]:
        return list(self._tasks)

    async def drain(self) -> None:
        """Wait for all in-flight scheduled runs to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def run_forever(self) -> None:
        """Tick until ``stop()``; in-flight runs are cancelled and awaited on exit."""
        self._stop.clear()
        logger.info(f"Scheduler started (tick={self.tick_interval}s, window={self.fire_window}s)")
        try:
            while not self._stop.is_set():
                try:
                    configs = await asyncio.to_thread(self.config_store.list_automated, enabled_only=True)
                except Exception as e:
                    logger.error(f"Scheduler refresh failed: {e}")
                else:
                    self.tick(configs=configs)
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.tick_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            for config_id in list(self._cancel_events):
                self.cancel(config_id)
            await self.drain()
            logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
