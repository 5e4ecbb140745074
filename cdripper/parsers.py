"""
CD Ripper Output Parsers

Pure functions that turn tool output and directory names into values.
Kept free of subprocess calls so they can be tested without a drive.
"""

import re
from dataclasses import dataclass, asdict
from typing import Dict

ALBUM_SEPARATOR = " - "

_DIGITS = re.compile(r'\d+')


@dataclass(frozen=True)
class AlbumIdentity:
    """Artist/album/year parsed from a beets album folder name"""
    artist: str = ""
    album: str = ""
    year: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def parse_offset(text: str) -> int:
    """Extract the drive read offset from `whipper cd-info` output.

    Uses the first line mentioning "offset" (any case) and the first run of
    digits on that line. Returns 0 when either is missing.
    """
    if not text:
        return 0

    for line in text.splitlines():
        if 'offset' in line.lower():
            match = _DIGITS.search(line)
            if match:
                return int(match.group(0))
            return 0

    return 0


def parse_album_identity(dirname: str) -> AlbumIdentity:
    """Parse "Artist - Album - Year" into an AlbumIdentity.

    Missing separators leave the trailing fields empty. Anything after the
    second separator stays in the year field.
    """
    parts = dirname.split(ALBUM_SEPARATOR, 2)
    parts += [""] * (3 - len(parts))
    artist, album, year = (p.strip() for p in parts)
    return AlbumIdentity(artist=artist, album=album, year=year)
