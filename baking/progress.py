"""Progress reporting for the bake orchestrator.

``BakeState`` never logs stage boundaries itself; it reports to an
injected ``ProgressCallback``. ``LoggingProgress`` (the default)
forwards to the standard ``logging`` module, ``NullProgress`` discards
everything. Tests may subclass ``ProgressCallback`` to record calls.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ProgressCallback:
    """Base callback: every hook is a no-op."""

    def stage(self, name: str) -> None:
        """A pipeline stage (e.g. ``"sun_mask"``, ``"indirect 1"``) begins."""

    def pass_done(self, name: str, stats: dict) -> None:
        """A stage finished; ``stats`` holds per-channel summary numbers."""

    def finished(self, elapsed_s: float) -> None:
        """The whole pass finished after ``elapsed_s`` seconds."""


class NullProgress(ProgressCallback):
    pass


class LoggingProgress(ProgressCallback):
    """Forward progress to ``logging``: stages at INFO, statistics at DEBUG."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def stage(self, name: str) -> None:
        self._log.info("Baking %s...", name)

    def pass_done(self, name: str, stats: dict) -> None:
        self._log.debug(
            "  %s: %s",
            name,
            ", ".join(f"{k}={v:.4g}" if isinstance(v, float) else f"{k}={v}" for k, v in stats.items()),
        )

    def finished(self, elapsed_s: float) -> None:
        self._log.info("Baked in %.2fs", elapsed_s)
