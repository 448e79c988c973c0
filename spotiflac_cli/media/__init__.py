"""
Media Processing Layer.

This package is responsible for all media file operations, including
downloading, tag access, and integrity validation.
"""

from .downloader import Downloader
from .integrity import FileIntegrityChecker
from .tags import extract_tags, read_embedded_isrc

__all__ = ["Downloader", "FileIntegrityChecker", "extract_tags", "read_embedded_isrc"]
