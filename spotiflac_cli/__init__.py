"""
spotiflac-cli: batch downloader for lossless tracks identified by Spotify metadata.
"""

__version__ = "0.4.0"
