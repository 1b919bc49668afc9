"""Process-scoped state with an explicit init step.

Everything here lives for the lifetime of the process and is created once in
the application lifespan: the glyph font (expensive to load), the trace
grader, the result reporter with its worker pool, the random source used for
options, and the per-device checkpoint sessions. Request handlers receive the
runtime through the ``get_runtime`` dependency instead of importing globals,
so tests can substitute their own.
"""
import logging
import random
from collections import OrderedDict
from typing import Optional
from bopomofo.config import settings
from bopomofo.constants import MAX_SESSIONS
from bopomofo.services.checkpoint import CheckpointMachine, Phase
from bopomofo.services.reporter import ResultReporter
from bopomofo.services.trace_grader import TraceGrader, load_glyph_font

logger = logging.getLogger(__name__)


class Runtime:
    """Long-lived collaborators shared by all requests."""

    def __init__(
        self,
        grader: TraceGrader,
        reporter: ResultReporter,
        rng: Optional[random.Random] = None,
        max_sessions: int = MAX_SESSIONS
    ):
        self.grader = grader
        self.reporter = reporter
        self.rng = rng or random.Random()
        self.max_sessions = max_sessions
        # Least recently used first
        self._sessions: "OrderedDict[str, CheckpointMachine]" = OrderedDict()

    def session_for(self, device_id: str) -> CheckpointMachine:
        """The device's checkpoint session, created in READY on first use."""
        machine = self._sessions.get(device_id)
        if machine is not None:
            self._sessions.move_to_end(device_id)
            return machine

        if len(self._sessions) >= self.max_sessions:
            self._evict_one()

        machine = CheckpointMachine(rng=self.rng)
        self._sessions[device_id] = machine
        return machine

    def _evict_one(self) -> None:
        """Drop the least recently used READY session, or the least recently used one if none is READY."""
        victim = next(
            (device_id for device_id, machine in self._sessions.items() if machine.phase == Phase.READY),
            next(iter(self._sessions))
        )
        evicted = self._sessions.pop(victim)
        logger.info(
            f"Evicted checkpoint session in phase {evicted.phase.value}",
            extra={"device_id": victim}
        )

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def shutdown(self) -> None:
        self.reporter.shutdown(wait=False)


_runtime: Optional[Runtime] = None


def init_runtime() -> Runtime:
    """Build the process runtime from settings. Called once at startup."""
    global _runtime

    grader = TraceGrader(font=load_glyph_font(settings.GLYPH_FONT_PATH))
    reporter = ResultReporter(endpoint=settings.RESULT_ENDPOINT)
    _runtime = Runtime(grader=grader, reporter=reporter)

    if not settings.RESULT_ENDPOINT:
        logger.info("RESULT_ENDPOINT not set; checkpoint results will stay on this device")
    logger.info("Runtime initialized")
    return _runtime


def shutdown_runtime() -> None:
    global _runtime
    if _runtime is not None:
        _runtime.shutdown()
        _runtime = None


def get_runtime() -> Runtime:
    """FastAPI dependency returning the initialized runtime."""
    if _runtime is None:
        raise RuntimeError("Runtime not initialized; init_runtime() runs in the app lifespan")
    return _runtime
