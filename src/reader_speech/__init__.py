"""
reader-speech: Cached Book Reading with Read-Aloud Playback.

The reading and speech core of a book reader application: book chunks are
fetched through a bounded cache with deduplicated background prefetching,
and chunk text is turned into speech by a deterministic, rule-driven
transform pipeline and a single-session playback controller that reports
word boundaries for highlighting.

Key Features:
    - Bounded recency cache for chunks and book metadata
    - Read-ahead prefetch that never fetches the same chunk twice at once
    - Dictionary, pronunciation and emotion rule tables (versioned)
    - Prosody markup (pauses, emphasis, question intonation)
    - Word-boundary highlighting and progress estimation
    - HTTP (httpx) and directory content sources
    - Simulated and pyttsx3 speech engines
    - Prometheus metrics support

Example Usage:
    >>> from reader_speech.services import ReaderService
    >>> from reader_speech.core.config import Settings
    >>>
    >>> settings = Settings(raw={"content": {"root_dir": "books"}})
    >>> service = ReaderService.from_settings(settings)
    >>> session = await service.read_aloud("moby-dick", 0, on_word_boundary=print)
    >>> await session.wait()
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
