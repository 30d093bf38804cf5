# scheduler.py
import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Set

from constants import ALARM_POLL_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlarmTime:
    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour out of range: {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute out of range: {self.minute}")

    @classmethod
    def parse(cls, value: str) -> "AlarmTime":
        """Parses 'HH:MM' (24h clock, local time)."""
        try:
            hours, minutes = value.strip().split(":")
            return cls(hour=int(hours), minute=int(minutes))
        except (AttributeError, ValueError) as exc:
            raise ValueError(f"invalid alarm time {value!r}, expected HH:MM") from exc

    def matches(self, moment: datetime) -> bool:
        return moment.hour == self.hour and moment.minute == self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass
class AlarmState:
    """Date key of the last firing; only the latest one is kept."""
    last_fired_date: Optional[str] = None


class DailyAlarm:
    """
    Fires a callback once per calendar day at a local wall-clock time.

    The clock is polled every poll_interval seconds, which must stay below a
    minute so that at least one poll lands inside the target minute. The
    date key is recorded before the callback is dispatched, so a slow
    callback can never be fired twice for the same day.
    """

    def __init__(
        self,
        alarm_time: AlarmTime,
        callback: Callable[[datetime], Any],
        *,
        poll_interval: float = ALARM_POLL_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
        state: Optional[AlarmState] = None,
    ) -> None:
        if not 0 < poll_interval < 60:
            raise ValueError("poll_interval must be between 0 and 60 seconds (exclusive)")
        self.alarm_time = alarm_time
        self._callback = callback
        self._poll_interval = poll_interval
        self._clock = clock
        self.state = state or AlarmState()
        self._task: Optional[asyncio.Task] = None
        self._callback_tasks: Set[asyncio.Task] = set()

    def check(self, now: Optional[datetime] = None) -> bool:
        """Runs one poll; returns True when the callback was dispatched."""
        now = now or self._clock()
        date_key = now.strftime("%Y-%m-%d")
        if not self.alarm_time.matches(now) or self.state.last_fired_date == date_key:
            return False

        self.state.last_fired_date = date_key
        logger.debug("Alarm %s triggered at %s", self.alarm_time, now.isoformat())
        self._dispatch(now)
        return True

    def _dispatch(self, now: datetime) -> None:
        try:
            result = self._callback(now)
        except Exception:
            logger.exception("Alarm callback failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Alarm callback failed: %s", exc, exc_info=exc)

    async def run(self) -> None:
        while True:
            self.check()
            await asyncio.sleep(self._poll_interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"daily-alarm-{self.alarm_time}")
            logger.info("Daily alarm armed for %s (polling every %gs)", self.alarm_time, self._poll_interval)
        return self._task

    async def stop(self) -> None:
        """Cancels polling and waits for any in-flight callback to settle."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for task in list(self._callback_tasks):
            task.cancel()
        if self._callback_tasks:
            await asyncio.gather(*self._callback_tasks, return_exceptions=True)
