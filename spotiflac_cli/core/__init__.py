"""
Core application engine for orchestrating the download process.

The `DownloadManager` acts as the session coordinator. It moves items through
the `QueueStore`, checks the library with the `LibraryDeduplicator`, and
delegates fetching to the `ServiceResolver`. The `LibraryVerifier` audits an
existing library for missing covers and lyrics.
"""
