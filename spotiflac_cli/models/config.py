"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

KNOWN_SERVICES = ("tidal", "qobuz", "amazon")
DEFAULT_SERVICE_ORDER = list(KNOWN_SERVICES)

# Named filename formats; anything else is treated as a {placeholder} template
FILENAME_FORMATS = {
    "title-artist": "{title} - {artist}",
    "artist-title": "{artist} - {title}",
    "title": "{title}",
}

AUDIO_FORMATS = {
    "LOSSLESS": {"name": "CD Lossless (16/44.1)", "ext": "flac", "color": "green"},
    "HI_RES_LOSSLESS": {"name": "Hi-Res (24-bit)", "ext": "flac", "color": "cyan"},
    "MP3": {"name": "MP3 320kbps", "ext": "mp3", "color": "yellow"},
}


def get_format_info(audio_format: str) -> dict[str, str]:
    """Gets all information for a given audio format from the central map."""
    return AUDIO_FORMATS.get(
        audio_format.upper(),
        {"name": "Unknown", "ext": "flac", "color": "white"},
    )


class DownloadConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Download Settings
    output_dir: str = "."
    filename_format: str = "title-artist"
    track_number: bool = False
    audio_format: str = "LOSSLESS"
    services: list[str] = Field(default_factory=lambda: list(DEFAULT_SERVICE_ORDER))
    max_workers: int = 10

    # Matching and Deduplication
    duration_tolerance: int = 3
    min_existing_size: int = 100 * 1024

    # Auxiliary Assets
    embed_lyrics: bool = False
    lyrics_workers: int = 2
    cover_workers: int = 10
    database_path: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("services", mode="before")
    @classmethod
    def split_services(cls, v):
        if isinstance(v, str):
            return [s.strip().lower() for s in v.split(",") if s.strip()]
        return [str(s).strip().lower() for s in v]

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: list[str]) -> list[str]:
        """Ensures the fallback order only names known services, each once."""
        if not v:
            raise ValueError("At least one download service must be configured.")
        unknown = [s for s in v if s not in KNOWN_SERVICES]
        if unknown:
            raise ValueError(
                f"Unknown service(s): {', '.join(unknown)}. "
                f"Choose from: {', '.join(KNOWN_SERVICES)}."
            )
        if len(set(v)) != len(v):
            raise ValueError("Each service may only appear once in the fallback order.")
        return v

    @field_validator("max_workers", "cover_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Workers must be between 1 and 32.")
        return v

    @field_validator("lyrics_workers")
    @classmethod
    def validate_lyrics_workers(cls, v: int) -> int:
        if v < 1 or v > 8:
            raise ValueError("Lyrics workers must be between 1 and 8.")
        return v

    @field_validator("audio_format")
    @classmethod
    def validate_audio_format(cls, v: str) -> str:
        v = v.upper()
        if v not in AUDIO_FORMATS:
            raise ValueError(
                f"Audio format must be one of: {', '.join(AUDIO_FORMATS)}."
            )
        return v

    @field_validator("filename_format")
    @classmethod
    def validate_filename_format(cls, v: str) -> str:
        """Validates the filename format or custom template."""
        if not v:
            raise ValueError("Filename format cannot be empty.")
        if v in FILENAME_FORMATS:
            return v
        if "/" in v or "\\" in v or ".." in v:
            raise ValueError("Filename template cannot contain path separators.")
        if "{title}" not in v:
            raise ValueError("Filename template must contain at least {title}.")
        return v

    @field_validator("duration_tolerance", "min_existing_size")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must not be negative.")
        return v

    @model_validator(mode="after")
    def validate_option_conflicts(self) -> "DownloadConfig":
        """Checks for conflicting download options."""
        if self.embed_lyrics and get_format_info(self.audio_format)["ext"] != "flac":
            raise ValueError("Lyrics embedding is only supported for FLAC downloads.")
        return self

    @property
    def extension(self) -> str:
        return get_format_info(self.audio_format)["ext"]

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
