"""
Utilities for building output filenames from track metadata.
"""

import re
from pathlib import Path
from typing import Any, Dict, Optional

from pathvalidate import sanitize_filename

from spotiflac_cli.models.config import FILENAME_FORMATS
from spotiflac_cli.models.queue import TrackIdentity


class PathFormatter:
    """
    Formats a filename from a named format ('title-artist', 'artist-title',
    'title') or a custom ``{placeholder}`` template.

    Available placeholders: {title}, {artist}, {album}, {album_artist},
    {year}, {track}, {disc}, {isrc}.
    """

    _PLACEHOLDER = re.compile(r"\{(\w+)\}")

    def __init__(
        self,
        filename_format: str = "title-artist",
        track_number: bool = False,
        extension: str = "flac",
    ) -> None:
        self.template = FILENAME_FORMATS.get(filename_format, filename_format)
        self.track_number = track_number
        self.extension = extension.lstrip(".")

    def format_filename(
        self, identity: TrackIdentity, position: Optional[int] = None
    ) -> str:
        """
        Generates a sanitized filename, including the extension.

        Args:
            identity: The track being named.
            position: Playlist position to use as the track number prefix when the
                identity carries no album track number.
        """
        template_vars = self._get_template_vars(identity)
        stem = self._PLACEHOLDER.sub(
            lambda m: template_vars.get(m.group(1), m.group(0)), self.template
        ).strip()
        stem = re.sub(r"\s+", " ", stem).strip(" -") or template_vars["title"]

        number = identity.track_number or (position or 0)
        if self.track_number and number > 0:
            stem = f"{number:02d}. {stem}"

        return sanitize_filename(f"{stem}.{self.extension}", platform="auto")

    def expected_path(
        self,
        output_dir: str | Path,
        identity: TrackIdentity,
        position: Optional[int] = None,
    ) -> Path:
        """The path an identity will be written to inside ``output_dir``."""
        return Path(output_dir) / self.format_filename(identity, position)

    def _get_template_vars(self, identity: TrackIdentity) -> Dict[str, Any]:
        """Builds the variable dictionary for template formatting."""
        return {
            "title": _clean(identity.title) or "Unknown Title",
            "artist": _clean(identity.artist) or "Unknown Artist",
            "album": _clean(identity.album) or "Unknown Album",
            "album_artist": _clean(identity.album_artist or identity.artist)
            or "Unknown Artist",
            "year": (identity.release_date or "")[:4],
            "track": f"{identity.track_number:02d}" if identity.track_number else "",
            "disc": str(identity.disc_number or 1),
            "isrc": identity.isrc,
        }


def _clean(value: str) -> str:
    # Placeholders must not introduce path separators
    return sanitize_filename(value.replace("/", ", "), platform="auto").strip()
