"""Checkpoint (mastery quiz) endpoints."""
from typing import List
from fastapi import APIRouter, Depends, Request, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session
from bopomofo.db.database import get_db
from bopomofo.routers.device import get_device_id_from_cookie, format_stats
from bopomofo.routers.learn import TraceSubmission
from bopomofo.services import preferences
from bopomofo.services.checkpoint import CheckpointMachine, Phase
from bopomofo.services.reporter import DeliveryStatus, build_result_payload
from bopomofo.services.runtime import Runtime, get_runtime
from bopomofo.services.speech import speak_symbol, speak_coach, trace_feedback
from bopomofo.rate_limit import limiter
from bopomofo.logging_config import get_logger
from bopomofo.constants import (
    COACH_PASS,
    COACH_FAIL,
    COACH_NEXT_LEVEL,
    CHECKPOINT_START_RATE_LIMIT,
    RESULT_SEND_RATE_LIMIT,
    TRACE_GRADE_RATE_LIMIT,
)

router = APIRouter(prefix="/api/checkpoint", tags=["checkpoint"])

logger = get_logger(__name__)


class AnswerSubmission(BaseModel):
    """Request body for a multiple-choice pick."""
    symbol: str = Field(..., min_length=1, max_length=8, description="Level symbol the question was asked for")
    selected_option: str = Field(..., min_length=1, max_length=8, description="Picked symbol")

    @field_validator('selected_option')
    @classmethod
    def validate_option(cls, v):
        """Validate that selected_option is not empty or whitespace."""
        if not v or v.strip() == '':
            raise ValueError('selected_option cannot be empty')
        return v.strip()


def _require_in_level(machine: CheckpointMachine) -> None:
    if machine.phase != Phase.IN_LEVEL:
        raise HTTPException(status_code=400, detail="No level in progress")


@router.get("/state")
async def get_checkpoint_state(
    request: Request,
    runtime: Runtime = Depends(get_runtime)
):
    """
    Get the current checkpoint state.

    Returns:
    - phase, levels, level index
    - current level progress and the thresholds it is held to
    - delivery status once all levels are cleared
    """
    device_id = get_device_id_from_cookie(request)
    return runtime.session_for(device_id).snapshot()


@router.post("/start")
@limiter.limit(CHECKPOINT_START_RATE_LIMIT)
async def start_checkpoint(
    request: Request,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime)
):
    """
    Start a checkpoint at the first enabled symbol.

    Refused with 400 while no student ID is saved.
    """
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)

    teacher_settings = preferences.load_teacher_settings(db, device_id)
    student = preferences.load_student(db, device_id)

    if not student.is_ready:
        raise HTTPException(status_code=400, detail="Student ID is required before starting")

    started = machine.start(
        teacher_settings.enabled_symbols,
        teacher_settings.thresholds,
        student.student_id
    )
    if not started:
        raise HTTPException(status_code=400, detail="Checkpoint could not be started")

    logger.info("Checkpoint started", extra={"device_id": device_id})

    speak = []
    if teacher_settings.auto_speak_on_question:
        speak.append(speak_symbol(machine.current_symbol).to_dict())

    return {**machine.snapshot(), "speak": speak}


@router.post("/question")
async def next_question(
    request: Request,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime)
):
    """
    Draw the next question: 4 distinct options, one of them the level symbol.

    Fewer than 4 enabled symbols cannot produce a question (400).
    """
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)
    _require_in_level(machine)

    try:
        options = machine.next_question()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    teacher_settings = preferences.load_teacher_settings(db, device_id)
    speak = []
    if teacher_settings.auto_speak_on_question:
        speak.append(speak_symbol(machine.current_symbol).to_dict())

    return {
        "question_number": machine.question_number,
        "symbol": machine.current_symbol,
        "options": options,
        "speak": speak,
    }


@router.post("/answer")
async def submit_answer(
    answer: AnswerSubmission,
    request: Request,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime)
):
    """
    Record a multiple-choice pick for the current level.

    With lockAfterPick on, only the first pick of each question counts; later
    picks return ``recorded: false``.
    """
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)
    _require_in_level(machine)

    teacher_settings = preferences.load_teacher_settings(db, device_id)

    try:
        is_correct = machine.record_answer(
            answer.symbol,
            answer.selected_option,
            lock_after_pick=teacher_settings.lock_after_pick
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if is_correct is None:
        return {"recorded": False, "locked": True, **machine.snapshot()}

    return {
        "recorded": True,
        "is_correct": is_correct,
        "correct_answer": machine.current_symbol,
        "selected_answer": answer.selected_option,
        **machine.snapshot(),
        "speak": [speak_symbol(machine.current_symbol).to_dict()],
    }


@router.post("/trace")
@limiter.limit(TRACE_GRADE_RATE_LIMIT)
async def submit_trace(
    submission: TraceSubmission,
    request: Request,
    runtime: Runtime = Depends(get_runtime)
):
    """Grade a trace of the current level symbol and count it as one attempt."""
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)
    _require_in_level(machine)

    if submission.symbol != machine.current_symbol:
        raise HTTPException(status_code=409, detail="Trace does not match the current level")

    verdict = runtime.grader.grade_encoded(submission.symbol, submission.image)
    machine.record_trace(submission.symbol, verdict.passed)

    return {
        "verdict": verdict.to_dict(),
        **machine.snapshot(),
        "speak": [trace_feedback(verdict.passed).to_dict()],
    }


def _dispatch_result(
    runtime: Runtime,
    machine: CheckpointMachine,
    device_id: str,
    student: preferences.StudentProfile,
    teacher_settings: preferences.TeacherSettings
) -> None:
    """Hand the completion summary to the reporter without waiting for delivery."""
    payload = build_result_payload(
        device_id=device_id,
        student_id=student.student_id,
        student_name=student.student_name,
        required_questions=teacher_settings.required_questions,
        required_accuracy=teacher_settings.required_accuracy,
        enabled_symbols=machine.levels,
        summary=machine.summary(),
    )
    token = machine.begin_delivery()
    runtime.reporter.submit(payload, on_done=lambda status: machine.finish_delivery(token, status))


@router.post("/evaluate")
async def evaluate_level(
    request: Request,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime)
):
    """
    Evaluate the current level once its required attempts are reached.

    Pass: cumulative stats grow by this level's counts and the next level
    starts (or the checkpoint is cleared and the result is sent). Fail: the
    same level restarts from zero. Teacher settings saved since the level
    began apply from here on.
    """
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)
    _require_in_level(machine)

    # The session only moves on once the new stats are committed
    point = machine.save_point()
    committed = False

    try:
        teacher_settings = preferences.load_teacher_settings(db, device_id)
        stats = preferences.load_stats(db, device_id)

        evaluation = machine.evaluate_level(stats, teacher_settings.thresholds)
        if evaluation is None:
            raise HTTPException(status_code=400, detail="Level not ready for evaluation")

        speak: List[dict] = []
        if evaluation.passed:
            preferences.save_stats(db, device_id, stats)
            db.commit()
            committed = True

            speak.append(speak_coach(COACH_PASS).to_dict())
            if evaluation.all_clear:
                student = preferences.load_student(db, device_id)
                _dispatch_result(runtime, machine, device_id, student, teacher_settings)
            else:
                speak.append(speak_coach(COACH_NEXT_LEVEL).to_dict())
                if teacher_settings.auto_speak_on_question:
                    speak.append(speak_symbol(machine.current_symbol).to_dict())
        else:
            speak.append(speak_coach(COACH_FAIL).to_dict())
            if teacher_settings.auto_speak_on_question:
                speak.append(speak_symbol(machine.current_symbol).to_dict())

        return {
            "evaluation": {
                "symbol": evaluation.symbol,
                "level_index": evaluation.level_index,
                "attempts": evaluation.attempts,
                "correct": evaluation.correct,
                "accuracy": evaluation.accuracy,
                "passed": evaluation.passed,
                "all_clear": evaluation.all_clear,
            },
            "stats": format_stats(stats),
            **machine.snapshot(),
            "speak": speak,
        }

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        if not committed:
            machine.restore(point)
        logger.error(f"Error evaluating level: {e}", exc_info=True, extra={"device_id": device_id})
        raise HTTPException(status_code=500, detail=f"Error evaluating level: {str(e)}")


@router.post("/restart")
async def restart_checkpoint(
    request: Request,
    runtime: Runtime = Depends(get_runtime)
):
    """Return to the start screen from any phase."""
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)
    machine.restart()
    return machine.snapshot()


@router.post("/result")
@limiter.limit(RESULT_SEND_RATE_LIMIT)
async def send_result(
    request: Request,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime)
):
    """
    Send the completion summary again, e.g. after a failed delivery.

    Only allowed once every level is cleared, and not while a delivery is
    still in flight. Each call is one more independent attempt.
    """
    device_id = get_device_id_from_cookie(request)
    machine = runtime.session_for(device_id)

    if machine.phase != Phase.ALL_CLEAR:
        raise HTTPException(status_code=400, detail="Checkpoint not cleared")
    if machine.delivery_status == DeliveryStatus.SENDING:
        raise HTTPException(status_code=409, detail="Result delivery already in progress")

    teacher_settings = preferences.load_teacher_settings(db, device_id)
    student = preferences.load_student(db, device_id)
    _dispatch_result(runtime, machine, device_id, student, teacher_settings)

    logger.info("Result resend requested", extra={"device_id": device_id})
    return machine.snapshot()
