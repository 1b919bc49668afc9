"""Persisted per-device state: cumulative stats, teacher settings, student identity and theme.

Every document is stored as raw JSON under a fixed key. Reads never fail:
a missing row, undecodable JSON or a wrong shape falls back to the documented
defaults, and out-of-range numbers are clamped into range. Validation happens
once here, so the rest of the application only ever sees well-formed values.
"""
import json
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, List, Optional
from sqlalchemy.orm import Session
from bopomofo.db.models import DeviceDocument
from bopomofo.services.checkpoint import GlobalStats, MasteryThresholds
from bopomofo.services.rounding import clamp, round_half_up
from bopomofo.constants import (
    BOPOMOFO,
    DEFAULT_REQUIRED_QUESTIONS,
    DEFAULT_REQUIRED_ACCURACY,
    DEFAULT_AUTO_SPEAK_ON_QUESTION,
    DEFAULT_LOCK_AFTER_PICK,
    THRESHOLD_MIN,
    THRESHOLD_MAX,
    STUDENT_ID_MAX_LENGTH,
    STUDENT_NAME_MAX_LENGTH,
    STORAGE_STATS_KEY,
    STORAGE_SETTINGS_KEY,
    STORAGE_STUDENT_KEY,
    STORAGE_THEME_KEY,
    THEMES,
)

logger = logging.getLogger(__name__)


@dataclass
class TeacherSettings:
    """Teacher-configurable checkpoint policy."""
    required_questions: int = DEFAULT_REQUIRED_QUESTIONS
    required_accuracy: int = DEFAULT_REQUIRED_ACCURACY
    enabled_symbols: List[str] = field(default_factory=lambda: list(BOPOMOFO))
    auto_speak_on_question: bool = DEFAULT_AUTO_SPEAK_ON_QUESTION
    lock_after_pick: bool = DEFAULT_LOCK_AFTER_PICK

    @property
    def thresholds(self) -> MasteryThresholds:
        return MasteryThresholds(
            required_attempts=self.required_questions,
            required_accuracy_percent=self.required_accuracy,
        )

    def to_document(self) -> dict:
        return {
            "requiredQuestions": self.required_questions,
            "requiredAccuracy": self.required_accuracy,
            "enabledSymbols": list(self.enabled_symbols),
            "autoSpeakOnQuestion": self.auto_speak_on_question,
            "lockAfterPick": self.lock_after_pick,
        }


@dataclass
class StudentProfile:
    """Student identity attached to delivered results."""
    student_id: str = ""
    student_name: str = ""

    @property
    def is_ready(self) -> bool:
        """A checkpoint may only start once a student ID is present."""
        return len(self.student_id.strip()) > 0

    def to_document(self) -> dict:
        return {"studentId": self.student_id, "studentName": self.student_name}


def _coerce_int(value: Any, default: int) -> int:
    """Interpret ``value`` as an integer, or return ``default`` if it is not numeric."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return round_half_up(number)


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return bool(value)


# ----- raw document access -----

def load_document(db: Session, device_id: str, key: str) -> Optional[Any]:
    """
    Load and decode one persisted JSON document.

    Returns:
        The decoded value, or None if the row is missing or its JSON is corrupt
    """
    row = db.query(DeviceDocument).filter(
        DeviceDocument.device_id == device_id,
        DeviceDocument.key == key
    ).first()

    if row is None or row.value is None:
        return None

    try:
        return json.loads(row.value)
    except ValueError:
        logger.warning(
            f"Corrupt document {key} for device {device_id}; using defaults",
            extra={"device_id": device_id}
        )
        return None


def save_document(db: Session, device_id: str, key: str, value: Any) -> None:
    """Upsert a JSON document. The caller commits."""
    raw = json.dumps(value, ensure_ascii=False)
    row = db.query(DeviceDocument).filter(
        DeviceDocument.device_id == device_id,
        DeviceDocument.key == key
    ).first()

    if row is None:
        db.add(DeviceDocument(device_id=device_id, key=key, value=raw))
    else:
        row.value = raw


# ----- parsing with defaults -----

def parse_stats(raw: Any) -> GlobalStats:
    """Build cumulative stats from a stored document, treating anything unusable as zero."""
    if not isinstance(raw, dict):
        return GlobalStats()
    return GlobalStats(
        correct=max(0, _coerce_int(raw.get("correct"), 0)),
        total=max(0, _coerce_int(raw.get("total"), 0)),
    )


def normalize_enabled_symbols(raw: Any) -> List[str]:
    """
    Keep catalog symbols only, in the given order, without duplicates.

    Non-lists, empty lists and lists with no catalog symbols fall back to the
    full catalog.
    """
    if not isinstance(raw, list) or len(raw) == 0:
        return list(BOPOMOFO)

    enabled = []
    for symbol in raw:
        if isinstance(symbol, str) and symbol in BOPOMOFO and symbol not in enabled:
            enabled.append(symbol)

    return enabled if enabled else list(BOPOMOFO)


def parse_teacher_settings(raw: Any) -> TeacherSettings:
    """Build teacher settings from a stored or submitted document.

    Thresholds are clamped to 1..100 and non-numeric values take the default.
    """
    if not isinstance(raw, dict):
        return TeacherSettings()

    required_questions = clamp(
        _coerce_int(raw.get("requiredQuestions"), DEFAULT_REQUIRED_QUESTIONS),
        THRESHOLD_MIN, THRESHOLD_MAX
    )
    required_accuracy = clamp(
        _coerce_int(raw.get("requiredAccuracy"), DEFAULT_REQUIRED_ACCURACY),
        THRESHOLD_MIN, THRESHOLD_MAX
    )

    return TeacherSettings(
        required_questions=required_questions,
        required_accuracy=required_accuracy,
        enabled_symbols=normalize_enabled_symbols(raw.get("enabledSymbols")),
        auto_speak_on_question=_coerce_bool(raw.get("autoSpeakOnQuestion"), DEFAULT_AUTO_SPEAK_ON_QUESTION),
        lock_after_pick=_coerce_bool(raw.get("lockAfterPick"), DEFAULT_LOCK_AFTER_PICK),
    )


def normalize_student(raw: Any) -> StudentProfile:
    """Strip all whitespace from the ID and cut both fields to their maximum lengths."""
    if not isinstance(raw, dict):
        return StudentProfile()

    student_id = raw.get("studentId")
    student_name = raw.get("studentName")
    student_id = student_id if isinstance(student_id, str) else ""
    student_name = student_name if isinstance(student_name, str) else ""

    return StudentProfile(
        student_id="".join(student_id.split())[:STUDENT_ID_MAX_LENGTH],
        student_name=student_name[:STUDENT_NAME_MAX_LENGTH],
    )


def parse_theme(raw: Any, prefers_dark: bool = False) -> str:
    if raw in THEMES:
        return raw
    return "dark" if prefers_dark else "light"


# ----- typed load/save -----

def load_stats(db: Session, device_id: str) -> GlobalStats:
    return parse_stats(load_document(db, device_id, STORAGE_STATS_KEY))


def save_stats(db: Session, device_id: str, stats: GlobalStats) -> None:
    save_document(db, device_id, STORAGE_STATS_KEY, asdict(stats))


def load_teacher_settings(db: Session, device_id: str) -> TeacherSettings:
    return parse_teacher_settings(load_document(db, device_id, STORAGE_SETTINGS_KEY))


def save_teacher_settings(db: Session, device_id: str, teacher_settings: TeacherSettings) -> None:
    save_document(db, device_id, STORAGE_SETTINGS_KEY, teacher_settings.to_document())


def load_student(db: Session, device_id: str) -> StudentProfile:
    return normalize_student(load_document(db, device_id, STORAGE_STUDENT_KEY))


def save_student(db: Session, device_id: str, student: StudentProfile) -> None:
    save_document(db, device_id, STORAGE_STUDENT_KEY, student.to_document())


def load_theme(db: Session, device_id: str, prefers_dark: bool = False) -> str:
    return parse_theme(load_document(db, device_id, STORAGE_THEME_KEY), prefers_dark)


def save_theme(db: Session, device_id: str, theme: str) -> None:
    save_document(db, device_id, STORAGE_THEME_KEY, parse_theme(theme))
