"""Autoplay timer — a two-state machine driving automatic page advance.

    Idle ──restart() [autoplay on, document non-empty]──▶ Armed(page_id, deadline)
    Armed ──restart()──▶ Armed (old handle cancelled first; no partial resume)
    Armed ──cancel()───▶ Idle
    Armed ──deadline───▶ Idle, then on_elapsed() (the session advances, which
                         calls restart() again while autoplay stays on)

At most one scheduled callback is ever outstanding. Missed deadlines are not
caught up. The duration is read when the timer arms, so pages without their
own duration follow the current default interval.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from storyweave.document import StoryDocument
from storyweave.models import Page, Settings

logger = logging.getLogger(__name__)


class Handle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], Any]], Handle]
Clock = Callable[[], float]


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Armed:
    page_id: str
    duration_sec: float
    deadline: float


TimerState = Idle | Armed


def effective_duration(page: Page, settings: Settings) -> float:
    return page.duration_sec or settings.auto_play_interval_sec


class AutoplayTimer:
    """Schedules the next automatic advance.

    Args:
        on_elapsed: Called when an armed deadline passes.
        scheduler:  ``(delay_sec, callback) -> handle``; defaults to the
                    running loop's ``call_later``.
        clock:      Monotonic clock in seconds; defaults to the loop's time.
    """

    def __init__(
        self,
        on_elapsed: Callable[[], Any],
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._on_elapsed = on_elapsed
        self._scheduler = scheduler
        self._clock = clock
        self._state: TimerState = Idle()
        self._handle: Handle | None = None

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def is_armed(self) -> bool:
        return isinstance(self._state, Armed)

    def _schedule(self, delay: float, callback: Callable[[], Any]) -> Handle:
        if self._scheduler is not None:
            return self._scheduler(delay, callback)
        return asyncio.get_running_loop().call_later(delay, callback)

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._state = Idle()

    def restart(self, document: StoryDocument, settings: Settings) -> TimerState:
        """Cancel any pending advance and arm for the current page if autoplay is on."""
        self.cancel()
        page = document.current_page
        if not settings.auto_play or page is None:
            return self._state

        duration = effective_duration(page, settings)
        self._state = Armed(
            page_id=page.id, duration_sec=duration, deadline=self._now() + duration
        )
        self._handle = self._schedule(duration, self._fire)
        logger.debug("autoplay armed page=%s duration=%.3fs", page.id, duration)
        return self._state

    def _fire(self) -> None:
        if not isinstance(self._state, Armed):
            return
        logger.debug("autoplay elapsed page=%s", self._state.page_id)
        self._handle = None
        self._state = Idle()
        self._on_elapsed()
