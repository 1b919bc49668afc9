"""Utterance descriptors for the browser's speech playback.

The service never plays audio itself. It tells the client what to say, with
which voice parameters, and which pre-generated clip (see
generate_audio.py) can stand in when no zh-TW voice is available.
The client keeps a single active utterance: a new one cancels the previous.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Optional
from bopomofo.constants import (
    BOPOMOFO,
    SPEECH_LANG,
    COACH_PASS,
    COACH_FAIL,
    COACH_NEXT_LEVEL,
    AUDIO_PATH_TEMPLATE,
)
from bopomofo.services.catalog import audio_file_for, clip_name, is_catalog_symbol


class SpeechKind(str, Enum):
    BOPOMOFO = "bopomofo"
    COACH = "coach"


VOICE_PARAMS = {
    SpeechKind.BOPOMOFO: {"rate": 0.85, "pitch": 1.05},
    SpeechKind.COACH: {"rate": 0.9, "pitch": 1.15},
}
"""Slightly slow symbol pronunciation; a warmer, higher coach voice."""

COACH_CLIPS: Dict[str, str] = {
    COACH_PASS: "coach_pass",
    COACH_FAIL: "coach_fail",
    COACH_NEXT_LEVEL: "coach_next_level",
}
"""Coach phrase -> audio clip name."""


@dataclass(frozen=True)
class Utterance:
    text: str
    kind: SpeechKind
    lang: str
    rate: float
    pitch: float
    audio_file: Optional[str]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


def _utterance(text: str, kind: SpeechKind, audio_file: Optional[str]) -> Utterance:
    params = VOICE_PARAMS[kind]
    return Utterance(
        text=text,
        kind=kind,
        lang=SPEECH_LANG,
        rate=params["rate"],
        pitch=params["pitch"],
        audio_file=audio_file,
    )


def speak_symbol(symbol: str) -> Utterance:
    """Pronounce a symbol."""
    audio_file = audio_file_for(symbol) if is_catalog_symbol(symbol) else None
    return _utterance(symbol, SpeechKind.BOPOMOFO, audio_file)


def speak_coach(text: str) -> Utterance:
    """Speak a coaching phrase."""
    clip = COACH_CLIPS.get(text)
    audio_file = AUDIO_PATH_TEMPLATE.format(clip=clip) if clip else None
    return _utterance(text, SpeechKind.COACH, audio_file)


def trace_feedback(passed: bool) -> Utterance:
    return speak_coach(COACH_PASS if passed else COACH_FAIL)


def audio_clips() -> Dict[str, str]:
    """Every pre-generated clip: clip name -> text to synthesize."""
    clips = {clip_name(symbol): symbol for symbol in BOPOMOFO}
    clips.update({clip: text for text, clip in COACH_CLIPS.items()})
    return clips
