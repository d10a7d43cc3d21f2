"""
Song records
============

The in-memory ``Song`` value, its identity key and the canonical text sent to
the embedding provider, plus the CSV loader that produces songs from the
input files (columns ``Artist, Title, Album, Lyric``).
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import LoadError

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("Artist", "Title", "Album", "Lyric")

SongKey = Tuple[str, str, str]


@dataclass(frozen=True, slots=True)
class Song:
    artist: str
    title: str
    album: str
    lyric: str = ""

    @property
    def key(self) -> SongKey:
        """Identity used for dedup: exact, case-sensitive ``(artist, title, album)``."""
        return (self.artist, self.title, self.album)

    def __str__(self) -> str:
        if not self.album:
            return f"{self.title} by {self.artist}"
        return f"{self.title} by {self.artist} / {self.album}"


def embedding_text(song: Song) -> str:
    """
    Return the text embedded for ``song``.

    Fields are joined with a single space, line breaks become spaces and the
    result is trimmed and lower-cased.
    """
    joined = " ".join((song.artist, song.title, song.album, song.lyric))
    return joined.replace("\r\n", " ").replace("\n", " ").replace("\r", " ").strip().lower()


def normalize_query(text: str) -> str:
    return (text or "").strip().lower()


def load_songs(path: str | Path) -> List[Song]:
    """
    Read one CSV file into songs.

    The header row must contain the exact column names in ``CSV_COLUMNS``;
    extra header columns are ignored, but every row must have exactly as many
    fields as the header. A leading UTF-8 BOM is skipped. Any parse problem
    raises :class:`LoadError`.
    """
    target = Path(path)
    try:
        with target.open(newline="", encoding="utf-8-sig") as handle:
            reader = csv.DictReader(handle)
            header = reader.fieldnames or []
            missing = [col for col in CSV_COLUMNS if col not in header]
            if missing:
                raise LoadError(
                    f"{target}: missing column(s) {', '.join(missing)} (found {header})"
                )

            songs: List[Song] = []
            for line_no, row in enumerate(reader, start=2):
                values = [row.get(col) for col in CSV_COLUMNS]
                if any(v is None for v in row.values()):
                    raise LoadError(f"{target}:{line_no}: row has too few fields")
                if None in row:
                    raise LoadError(f"{target}:{line_no}: row has more fields than the header")
                songs.append(Song(*values))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise LoadError(f"Failed to read {target}: {exc}") from exc

    logger.info("Read %d songs at %s", len(songs), target)
    return songs


def load_many(paths: Iterable[str | Path]) -> List[Song]:
    """Load and concatenate several CSV files, in order."""
    songs: List[Song] = []
    for path in paths:
        songs.extend(load_songs(path))
    logger.info("Total song count: %d", len(songs))
    return songs


__all__ = [
    "CSV_COLUMNS",
    "Song",
    "SongKey",
    "embedding_text",
    "normalize_query",
    "load_songs",
    "load_many",
]
