"""Checkpoint state machine: mastery-gated progression through the enabled symbols.

A session walks an ordered list of symbols ("levels"). Each level collects
attempts (multiple-choice picks or graded traces) until the teacher's
required attempt count is reached; the level is then evaluated against the
required accuracy. Passing advances to the next level (or to ALL_CLEAR after
the last one); failing restarts the same level from zero.

Thresholds are captured when a level (re)starts. A settings change made
mid-level only takes effect at the next reset boundary.
"""
import copy
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence
from bopomofo.constants import OPTIONS_PER_QUESTION
from bopomofo.services.reporter import DeliveryStatus
from bopomofo.services.rounding import round_half_up

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Checkpoint session phase."""
    READY = "ready"
    IN_LEVEL = "in_level"
    ALL_CLEAR = "all_clear"


@dataclass(frozen=True)
class MasteryThresholds:
    """Teacher-set pass policy for one level. Both values are in 1..100."""
    required_attempts: int
    required_accuracy_percent: int


@dataclass
class GlobalStats:
    """Cumulative counters over passed levels only."""
    correct: int = 0
    total: int = 0


@dataclass
class LevelProgress:
    """Attempt counters for the level in progress."""
    symbol: str
    attempts: int = 0
    correct: int = 0

    def record(self, is_correct: bool) -> None:
        self.attempts += 1
        if is_correct:
            self.correct += 1

    @property
    def accuracy(self) -> int:
        return accuracy_percent(self.correct, self.attempts)


@dataclass
class LevelEvaluation:
    """Outcome of evaluating a level."""
    symbol: str
    level_index: int
    attempts: int
    correct: int
    accuracy: int
    passed: bool
    all_clear: bool


def accuracy_percent(correct: int, attempts: int) -> int:
    """Whole-number accuracy percentage, rounding .5 up; 0 when there are no attempts."""
    if attempts <= 0:
        return 0
    return round_half_up(correct / attempts * 100)


class CheckpointMachine:
    """
    One device's checkpoint session.

    Not thread-safe: all transitions are driven from the request handlers on
    the event loop. The only cross-thread write is ``finish_delivery``, which
    is guarded by a delivery token so a stale completion cannot overwrite the
    status of a newer session.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self._delivery_token = 0
        self._clear()

    def _clear(self) -> None:
        self.phase = Phase.READY
        self.levels: List[str] = []
        self.level_index = 0
        self.progress: Optional[LevelProgress] = None
        self.thresholds: Optional[MasteryThresholds] = None
        self.delivery_status: Optional[DeliveryStatus] = None
        self._reset_question()

    def _reset_question(self) -> None:
        self.question_number = 0
        self.options: List[str] = []
        self.question_answered = False

    @property
    def current_symbol(self) -> Optional[str]:
        if self.phase != Phase.IN_LEVEL:
            return None
        return self.levels[self.level_index]

    @property
    def total_levels(self) -> int:
        return len(self.levels)

    def start(self, levels: Sequence[str], thresholds: MasteryThresholds, student_id: str) -> bool:
        """
        Begin a new session at the first level.

        The start is refused (returns False, phase stays READY) when there are
        no levels or no student ID. Duplicate symbols are dropped, keeping the
        first occurrence.

        Returns:
            True if the session started
        """
        unique_levels = list(dict.fromkeys(levels))

        if not unique_levels:
            logger.info("Checkpoint start refused: no enabled symbols")
            return False
        if not student_id or not student_id.strip():
            logger.info("Checkpoint start refused: student ID missing")
            return False

        self._clear()
        self._delivery_token += 1
        self.levels = unique_levels
        self.thresholds = thresholds
        self.level_index = 0
        self.progress = LevelProgress(symbol=unique_levels[0])
        self.phase = Phase.IN_LEVEL

        logger.info(
            f"Checkpoint started: {len(unique_levels)} levels, "
            f"attempts>={thresholds.required_attempts}, "
            f"accuracy>={thresholds.required_accuracy_percent}%"
        )
        return True

    def options_for(self, level_symbol: str) -> List[str]:
        """
        Draw the multiple-choice options for a question.

        Returns the target plus distinct symbols sampled uniformly without
        replacement from the whole enabled set, in shuffled order.

        Raises:
            ValueError: If fewer than 4 distinct symbols are enabled
        """
        others = [symbol for symbol in self.levels if symbol != level_symbol]
        needed = OPTIONS_PER_QUESTION - 1

        if len(others) < needed:
            raise ValueError(
                f"At least {OPTIONS_PER_QUESTION} distinct symbols must be enabled "
                f"(got {len(others) + 1})"
            )

        options = [level_symbol] + self.rng.sample(others, needed)
        self.rng.shuffle(options)
        return options

    def next_question(self) -> Optional[List[str]]:
        """Open a new question for the current level; None if no level is in progress."""
        if self.phase != Phase.IN_LEVEL:
            return None

        options = self.options_for(self.current_symbol)
        self.question_number += 1
        self.options = options
        self.question_answered = False
        return options

    def record_answer(
        self,
        attempted_symbol: str,
        chosen_option: str,
        lock_after_pick: bool = False
    ) -> Optional[bool]:
        """
        Count one multiple-choice pick.

        Returns:
            Whether the pick was correct, or None if nothing was recorded
            (no level in progress, or the question is locked after its first pick)

        Raises:
            ValueError: If ``attempted_symbol`` is not the current level's symbol
        """
        if self.phase != Phase.IN_LEVEL:
            return None
        if attempted_symbol != self.current_symbol:
            raise ValueError(
                f"Answer for {attempted_symbol!r} does not match current level {self.current_symbol!r}"
            )
        if lock_after_pick and self.question_answered:
            return None

        is_correct = chosen_option == self.current_symbol
        self.progress.record(is_correct)
        self.question_answered = True
        return is_correct

    def record_trace(self, attempted_symbol: str, passed: bool) -> Optional[bool]:
        """Count one graded trace as an attempt, correct iff the trace passed."""
        if self.phase != Phase.IN_LEVEL:
            return None
        if attempted_symbol != self.current_symbol:
            raise ValueError(
                f"Trace for {attempted_symbol!r} does not match current level {self.current_symbol!r}"
            )

        self.progress.record(passed)
        return passed

    def can_evaluate(self) -> bool:
        """True once the level has collected the required number of attempts."""
        if self.phase != Phase.IN_LEVEL:
            return False
        return self.progress.attempts >= self.thresholds.required_attempts

    def evaluate_level(
        self,
        stats: GlobalStats,
        current_thresholds: Optional[MasteryThresholds] = None
    ) -> Optional[LevelEvaluation]:
        """
        Pass or fail the current level.

        No-op (returns None) before the attempts gate is reached. On a pass
        ``stats`` accumulates this level's counters and the session advances;
        on a fail the same level restarts from zero. ``current_thresholds``,
        if given, replaces the active thresholds at this reset boundary.

        Args:
            stats: Cumulative counters, mutated only on a pass
            current_thresholds: Latest teacher thresholds to apply from the next level run

        Returns:
            LevelEvaluation, or None if the level cannot be evaluated yet
        """
        if not self.can_evaluate():
            return None

        progress = self.progress
        accuracy = progress.accuracy
        passed = accuracy >= self.thresholds.required_accuracy_percent
        evaluated_index = self.level_index

        if current_thresholds is not None:
            self.thresholds = current_thresholds

        if passed:
            stats.correct += progress.correct
            stats.total += progress.attempts
            self.level_index += 1

            if self.level_index >= len(self.levels):
                self.phase = Phase.ALL_CLEAR
                self.progress = None
            else:
                self.progress = LevelProgress(symbol=self.levels[self.level_index])
        else:
            self.progress = LevelProgress(symbol=progress.symbol)

        self._reset_question()

        logger.info(
            f"Level {evaluated_index} ({progress.symbol}) "
            f"{'passed' if passed else 'failed'}: "
            f"{progress.correct}/{progress.attempts} = {accuracy}%",
            extra={"symbol": progress.symbol, "level_index": evaluated_index}
        )

        return LevelEvaluation(
            symbol=progress.symbol,
            level_index=evaluated_index,
            attempts=progress.attempts,
            correct=progress.correct,
            accuracy=accuracy,
            passed=passed,
            all_clear=self.phase == Phase.ALL_CLEAR,
        )

    def save_point(self) -> dict:
        """Copy of the session fields that transitions change, for ``restore``."""
        return {
            "phase": self.phase,
            "levels": list(self.levels),
            "level_index": self.level_index,
            "progress": copy.copy(self.progress),
            "thresholds": self.thresholds,
            "delivery_status": self.delivery_status,
            "question_number": self.question_number,
            "options": list(self.options),
            "question_answered": self.question_answered,
        }

    def restore(self, point: dict) -> None:
        """Undo transitions made since ``point`` was taken, e.g. when their effects could not be saved."""
        for name, value in point.items():
            setattr(self, name, value)

    def restart(self) -> None:
        """Return to READY from any phase, discarding progress and any pending delivery status."""
        self._delivery_token += 1
        self._clear()

    def summary(self) -> dict:
        """Completion summary handed to the result reporter."""
        return {"totalLevels": self.total_levels, "clearedLevels": self.total_levels}

    def begin_delivery(self) -> int:
        """Mark a delivery as in flight and return the token its completion must present."""
        self._delivery_token += 1
        self.delivery_status = DeliveryStatus.SENDING
        return self._delivery_token

    def finish_delivery(self, token: int, status: DeliveryStatus) -> bool:
        """Record a delivery outcome unless the session moved on since it was dispatched."""
        if token != self._delivery_token or self.phase != Phase.ALL_CLEAR:
            return False
        self.delivery_status = status
        return True

    def snapshot(self) -> dict:
        """Serializable view of the session for the API."""
        return {
            "phase": self.phase.value,
            "levels": list(self.levels),
            "level_index": self.level_index,
            "total_levels": self.total_levels,
            "current_symbol": self.current_symbol,
            "progress": {
                "symbol": self.progress.symbol,
                "attempts": self.progress.attempts,
                "correct": self.progress.correct,
                "accuracy": self.progress.accuracy,
            } if self.progress else None,
            "thresholds": {
                "required_attempts": self.thresholds.required_attempts,
                "required_accuracy_percent": self.thresholds.required_accuracy_percent,
            } if self.thresholds else None,
            "can_evaluate": self.can_evaluate(),
            "question_number": self.question_number,
            "options": list(self.options),
            "delivery_status": self.delivery_status.value if self.delivery_status else None,
        }
