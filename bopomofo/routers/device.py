"""Device bootstrap and persisted local state endpoints."""
import uuid
from datetime import datetime
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Response, Request, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from bopomofo.db.database import get_db
from bopomofo.db.models import Device
from bopomofo.services import preferences
from bopomofo.services.checkpoint import GlobalStats, accuracy_percent
from bopomofo.config import settings
from bopomofo.constants import COOKIE_NAME, DEVICE_ID_PREFIX, BOPOMOFO
from bopomofo.logging_config import get_logger

router = APIRouter(prefix="/api", tags=["device"])

logger = get_logger(__name__)


class SettingsUpdate(BaseModel):
    """Teacher settings; omitted fields keep their saved values, numbers are clamped to 1..100."""
    model_config = ConfigDict(populate_by_name=True)

    required_questions: Optional[int] = Field(None, alias="requiredQuestions")
    required_accuracy: Optional[int] = Field(None, alias="requiredAccuracy")
    enabled_symbols: Optional[List[str]] = Field(None, alias="enabledSymbols")
    auto_speak_on_question: Optional[bool] = Field(None, alias="autoSpeakOnQuestion")
    lock_after_pick: Optional[bool] = Field(None, alias="lockAfterPick")


class StudentUpdate(BaseModel):
    """Student identity; the ID loses all whitespace and is cut to 12 characters, the name to 20."""
    model_config = ConfigDict(populate_by_name=True)

    student_id: str = Field("", alias="studentId", max_length=100)
    student_name: str = Field("", alias="studentName", max_length=100)


class ThemeUpdate(BaseModel):
    theme: Literal["light", "dark"]


def get_device_id_from_cookie(request: Request) -> str:
    """Extract device ID from cookie."""
    device_id = request.cookies.get(COOKIE_NAME)
    if not device_id:
        raise HTTPException(status_code=401, detail="No device session found")
    return device_id


def get_or_create_device(request: Request, response: Response, db: Session) -> str:
    """
    Get or create the anonymous device based on cookie.

    The identifier is generated once, stored as a Device row and returned in
    a long-lived cookie, so it stays stable across process restarts.

    Returns:
        Device ID
    """
    device_id = request.cookies.get(COOKIE_NAME)

    if device_id:
        device = db.query(Device).filter(Device.id == device_id).first()
        if device:
            device.last_active_at = datetime.utcnow()
            db.commit()
            return device_id

    device_id = f"{DEVICE_ID_PREFIX}{uuid.uuid4()}"
    db.add(Device(id=device_id))
    db.commit()

    logger.info("New device registered", extra={"device_id": device_id})

    response.set_cookie(
        key=COOKIE_NAME,
        value=device_id,
        max_age=settings.COOKIE_MAX_AGE,
        httponly=settings.COOKIE_HTTPONLY,
        samesite=settings.COOKIE_SAMESITE,
        secure=settings.COOKIE_SECURE
    )

    return device_id


def format_stats(stats: GlobalStats) -> dict:
    return {
        "correct": stats.correct,
        "total": stats.total,
        "accuracy": accuracy_percent(stats.correct, stats.total),
    }


@router.get("/bootstrap")
async def bootstrap(
    request: Request,
    response: Response,
    prefers_dark: bool = False,
    db: Session = Depends(get_db)
):
    """
    Bootstrap the device session and return its persisted state.

    Args:
        prefers_dark: Client colour-scheme preference, used when no theme is saved

    Returns:
    - device_id
    - cumulative stats over passed levels
    - teacher settings, student identity, theme
    """
    device_id = get_or_create_device(request, response, db)

    return {
        "device_id": device_id,
        "stats": format_stats(preferences.load_stats(db, device_id)),
        "settings": preferences.load_teacher_settings(db, device_id).to_document(),
        "student": preferences.load_student(db, device_id).to_document(),
        "theme": preferences.load_theme(db, device_id, prefers_dark),
        "catalog_size": len(BOPOMOFO),
    }


@router.put("/settings")
async def update_settings(
    update: SettingsUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Save teacher settings. Changes reach a running checkpoint only at its next level reset."""
    device_id = get_device_id_from_cookie(request)

    current = preferences.load_teacher_settings(db, device_id).to_document()
    current.update(update.model_dump(by_alias=True, exclude_none=True))
    teacher_settings = preferences.parse_teacher_settings(current)

    preferences.save_teacher_settings(db, device_id, teacher_settings)
    db.commit()

    return teacher_settings.to_document()


@router.put("/student")
async def update_student(
    update: StudentUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    device_id = get_device_id_from_cookie(request)

    student = preferences.normalize_student(update.model_dump(by_alias=True))
    preferences.save_student(db, device_id, student)
    db.commit()

    return {**student.to_document(), "ready": student.is_ready}


@router.put("/theme")
async def update_theme(
    update: ThemeUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    device_id = get_device_id_from_cookie(request)

    preferences.save_theme(db, device_id, update.theme)
    db.commit()

    return {"theme": update.theme}


@router.delete("/stats")
async def clear_stats(
    request: Request,
    db: Session = Depends(get_db)
):
    """Reset the cumulative stats kept on this device."""
    device_id = get_device_id_from_cookie(request)

    cleared = GlobalStats()
    preferences.save_stats(db, device_id, cleared)
    db.commit()

    logger.info("Local stats cleared", extra={"device_id": device_id})
    return format_stats(cleared)
