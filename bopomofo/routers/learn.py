"""Learn tab endpoints: browse symbols, hear them, practise tracing."""
from fastapi import APIRouter, Depends, Request, HTTPException
from pydantic import BaseModel, Field
from bopomofo.services.catalog import list_symbols, is_catalog_symbol
from bopomofo.services.runtime import Runtime, get_runtime
from bopomofo.services.speech import speak_symbol, trace_feedback
from bopomofo.rate_limit import limiter
from bopomofo.constants import (
    TRACE_GRADE_RATE_LIMIT,
    TRACE_CANVAS_SIZE,
    TOLERANCE_BAND_WIDTH,
    TRACE_PASS_SCORE,
    TRACE_IMAGE_MAX_LENGTH,
)

router = APIRouter(prefix="/api/learn", tags=["learn"])


class TraceSubmission(BaseModel):
    """A traced glyph as a PNG data URL (canvas.toDataURL()) or bare base64."""
    symbol: str = Field(..., min_length=1, max_length=8)
    image: str = Field(
        ..., min_length=1, max_length=TRACE_IMAGE_MAX_LENGTH, description="PNG as data URL or base64"
    )


@router.get("/symbols")
async def get_symbols():
    """List the catalog in curriculum order with the grading canvas parameters."""
    return {
        "symbols": list_symbols(),
        "canvas_size": TRACE_CANVAS_SIZE,
        "tolerance_band": TOLERANCE_BAND_WIDTH,
        "pass_score": TRACE_PASS_SCORE,
    }


@router.get("/{symbol}/speech")
async def get_symbol_speech(symbol: str):
    """Utterance for the pronounce button."""
    if not is_catalog_symbol(symbol):
        raise HTTPException(status_code=404, detail="Unknown symbol")
    return speak_symbol(symbol).to_dict()


@router.post("/trace")
@limiter.limit(TRACE_GRADE_RATE_LIMIT)
async def grade_practice_trace(
    submission: TraceSubmission,
    request: Request,
    runtime: Runtime = Depends(get_runtime)
):
    """
    Grade a practice trace. Has no effect on any checkpoint session.

    Returns:
    - verdict (score, passed and the coverage counts behind them)
    - coaching utterance
    """
    if not is_catalog_symbol(submission.symbol):
        raise HTTPException(status_code=400, detail="Unknown symbol")

    verdict = runtime.grader.grade_encoded(submission.symbol, submission.image)

    return {
        "symbol": submission.symbol,
        "verdict": verdict.to_dict(),
        "speak": [trace_feedback(verdict.passed).to_dict()],
    }
