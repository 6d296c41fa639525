"""
Lyrics package

Sources are consulted in order until one returns text:
- LrclibProvider: synced or plain lyrics, duration-aware exact match
- LyricsOvhProvider: plain lyrics fallback

LyricsResolver memoizes results (including "nothing found") per
``"<track>__<artist>"`` key in a bounded cache and publishes the lyrics for
the current track without letting a slow lookup for a skipped track win.
"""

from .lrclib import LrclibProvider
from .lyricsovh import LyricsOvhProvider
from .resolver import LyricsCache, LyricsResolver, LyricsState, make_key

__all__ = [
    'LrclibProvider',
    'LyricsOvhProvider',
    'LyricsCache',
    'LyricsResolver',
    'LyricsState',
    'make_key',
]
