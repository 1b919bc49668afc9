"""Symbol catalog lookups."""
from typing import List, Optional
from bopomofo.constants import BOPOMOFO, AUDIO_PATH_TEMPLATE


def is_catalog_symbol(symbol: str) -> bool:
    """Return True if ``symbol`` is one of the drillable symbols."""
    return symbol in BOPOMOFO


def symbol_position(symbol: str) -> Optional[int]:
    """1-based catalog position of ``symbol``, or None if it is not in the catalog."""
    try:
        return BOPOMOFO.index(symbol) + 1
    except ValueError:
        return None


def clip_name(symbol: str) -> str:
    """Audio clip name for a catalog symbol, e.g. ``symbol_01`` for ㄅ."""
    position = symbol_position(symbol)
    if position is None:
        raise ValueError(f"Unknown symbol: {symbol!r}")
    return f"symbol_{position:02d}"


def audio_file_for(symbol: str) -> str:
    """URL path of the pre-generated pronunciation clip for ``symbol``."""
    return AUDIO_PATH_TEMPLATE.format(clip=clip_name(symbol))


def list_symbols() -> List[dict]:
    """Catalog entries in curriculum order, as sent to the learn tab."""
    return [
        {
            "symbol": symbol,
            "position": index + 1,
            "audio_file": audio_file_for(symbol),
        }
        for index, symbol in enumerate(BOPOMOFO)
    ]
