"""Application-wide constants and configuration values.

This module centralizes the symbol catalog, grading constants, settings
defaults and storage keys used throughout the application.
"""

# Symbol Catalog
BOPOMOFO = (
    "ㄅ", "ㄆ", "ㄇ", "ㄈ", "ㄉ", "ㄊ", "ㄋ", "ㄌ", "ㄍ", "ㄎ", "ㄏ", "ㄐ", "ㄑ", "ㄒ",
    "ㄓ", "ㄔ", "ㄕ", "ㄖ", "ㄗ", "ㄘ", "ㄙ",
    "ㄧ", "ㄨ", "ㄩ", "ㄚ", "ㄛ", "ㄜ", "ㄝ", "ㄞ", "ㄟ", "ㄠ", "ㄡ", "ㄢ", "ㄣ", "ㄤ", "ㄥ", "ㄦ",
)
"""The 37 drillable symbols (tone marks excluded), in default curriculum order."""

# Trace Grading
TRACE_CANVAS_SIZE = 320
"""Side length in pixels of both the trace sample and the reference mask."""

TOLERANCE_BAND_WIDTH = 34
"""Width of the stroke drawn around the glyph outline; half of it extends outward."""

GLYPH_FONT_SIZE = 220
"""Pixel size of the reference glyph."""

GLYPH_VERTICAL_OFFSET = 10
"""Downward shift of the glyph centre, matching the guide drawn on the tracing canvas."""

MASK_MIN_ALPHA = 10
"""A mask pixel must be more opaque than this to count as target."""

MASK_MAX_CHANNEL = 220
"""A mask pixel counts as target when any channel is darker than this."""

INK_MIN_RED = 150
"""Ink pixels must have a red channel above this."""

INK_MAX_GREEN_BLUE = 180
"""Ink pixels must have green and blue channels below this."""

COVERAGE_WEIGHT = 130
BASELINE_POINTS = 12
OUTSIDE_PENALTY = 18

TRACE_PASS_SCORE = 60
"""Minimum score for a passing trace. Not teacher-configurable."""

TRACE_IMAGE_MAX_LENGTH = 4_000_000
"""Longest accepted trace submission (data URL or base64 characters)."""

# Multiple choice
OPTIONS_PER_QUESTION = 4
"""Number of candidate symbols offered per question, including the answer."""

# Teacher settings defaults and ranges
DEFAULT_REQUIRED_QUESTIONS = 10
DEFAULT_REQUIRED_ACCURACY = 80
THRESHOLD_MIN = 1
THRESHOLD_MAX = 100
DEFAULT_AUTO_SPEAK_ON_QUESTION = True
DEFAULT_LOCK_AFTER_PICK = True

# Student identity limits
STUDENT_ID_MAX_LENGTH = 12
STUDENT_NAME_MAX_LENGTH = 20

# Persisted document keys
STORAGE_STATS_KEY = "bopomofo_stats_v3"
STORAGE_SETTINGS_KEY = "bopomofo_teacher_settings_v3"
STORAGE_STUDENT_KEY = "bopomofo_student_v3"
STORAGE_THEME_KEY = "bopomofo_theme_v1"

THEMES = ("light", "dark")

# Cookie Configuration
COOKIE_NAME = "bpm_device"
"""Name of the cookie that carries the device identifier."""

DEVICE_ID_PREFIX = "dev_"

# Result delivery
RESULT_TYPE = "bopomofo_checkpoint_result"
RESULT_MODE = "checkpoint"
RESULT_CONTENT_TYPE = "text/plain;charset=utf-8"
"""Plain-text MIME type avoids a CORS preflight on the receiving endpoint."""

REPORTER_MAX_WORKERS = 2

# Checkpoint sessions
MAX_SESSIONS = 500
"""Per-device sessions kept in memory; beyond this the least recently used is evicted, idle ones first."""

# Speech
SPEECH_LANG = "zh-TW"
COACH_PASS = "你通過了!"
COACH_FAIL = "未通過，再試試看。"
COACH_NEXT_LEVEL = "太好了，進入下一關。"

# Audio Configuration
AUDIO_DIR = "bopomofo/static/audio"
AUDIO_PATH_TEMPLATE = "/static/audio/{clip}.mp3"
"""Template for audio clip URLs. {clip} is a clip name such as symbol_01 or coach_pass."""

# Logging
DEFAULT_LOG_LEVEL = "INFO"
"""Default logging level for the application."""

# Rate Limiting
CHECKPOINT_START_RATE_LIMIT = "10/minute"
"""Maximum number of checkpoint starts allowed per minute per client."""

TRACE_GRADE_RATE_LIMIT = "30/minute"
"""Maximum number of trace gradings per minute per client (glyph rendering is CPU-bound)."""

RESULT_SEND_RATE_LIMIT = "5/minute"
"""Maximum number of manual result sends per minute per client."""
