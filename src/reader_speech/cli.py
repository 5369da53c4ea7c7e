"""
Command-Line Interface for reader-speech.

Transforms text for speech, reads book chunks from a directory or HTTP
content source, and plays them through a speech engine while printing the
highlighted words.

Usage Examples:
    # Show what would be spoken (no engine)
    reader-speech "Dr. Smith said: *hello*?" --dry-run --json

    # Speak text through the simulated engine, printing word highlights
    reader-speech --text "Call me Ishmael." --engine simulated

    # Read chunk 4 of a book from a local directory and warm the next 3
    reader-speech --book moby-dick --chunk 4 --dir books --prefetch 3

    # Read from the HTTP API
    reader-speech --book moby-dick --chunk 4 --base-url http://localhost:3000

    # Reading time estimate / voice list
    reader-speech --file chapter.txt --estimate
    reader-speech --voices --engine pyttsx3

Environment Variables:
    READER_SPEECH_SETTINGS: Settings file (default config/settings.yaml)
    READER_SPEECH_ENGINE: Engine override (simulated, pyttsx3)
    READER_SPEECH_CONTENT_URL / READER_SPEECH_CONTENT_DIR: Content source
    READER_SPEECH_LOG_LEVEL: 1-4
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from reader_speech.content.source import ContentSource, DirectoryContentSource, HttpContentSource
from reader_speech.core.config import ConfigValidationError, ReaderConfig, Settings, load_settings
from reader_speech.core.logging import configure_logging, get_logger, info, set_trace_id
from reader_speech.errors import ReaderError
from reader_speech.services.reader_service import ReaderService, build_content_source
from reader_speech.speech.engine import get_engine
from reader_speech.speech.playback import WordBoundaryEvent, estimate_duration, estimate_speech_seconds
from reader_speech.speech.transform import TextTransformPipeline

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="reader-speech CLI (read-aloud)")

    # Input options
    parser.add_argument("text_pos", nargs="?", help="Text to speak (positional)")
    parser.add_argument("--text", help="Text to speak")
    parser.add_argument("--file", help="Read the text from a file")
    parser.add_argument("--book", help="Book content id")
    parser.add_argument("--chunk", type=int, default=0, help="Chunk index within --book")

    # Content source
    parser.add_argument("--dir", help="Directory content source root")
    parser.add_argument("--base-url", help="HTTP content source base URL")
    parser.add_argument("--prefetch", type=int, metavar="N",
                        help="Warm the N chunks after --chunk")

    # Voice
    parser.add_argument("--engine", help="Speech engine (simulated, pyttsx3)")
    parser.add_argument("--voice", help="Voice id or name")
    parser.add_argument("--rate", type=float, help="Speaking rate (0.1-10)")
    parser.add_argument("--pitch", type=float, help="Pitch (0-2)")
    parser.add_argument("--volume", type=float, help="Volume (0-1)")
    parser.add_argument("--word-interval", type=float, default=0.0,
                        help="Seconds between words for the simulated engine")

    # Execution modes
    parser.add_argument("--settings", help="Settings YAML file")
    parser.add_argument("--dry-run", action="store_true",
                        help="Transform and summarize without speaking")
    parser.add_argument("--estimate", action="store_true",
                        help="Print the reading time estimate")
    parser.add_argument("--voices", action="store_true",
                        help="List the engine's ranked voices")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    return parser.parse_args(argv)


def _load_settings(path: Optional[str]) -> Settings:
    """Explicit path must exist; the default path is optional."""
    if path:
        return load_settings(path)
    default = os.getenv("READER_SPEECH_SETTINGS") or DEFAULT_SETTINGS_PATH
    if Path(default).exists():
        return load_settings(default)
    return Settings(raw={})


def _load_text(args: argparse.Namespace) -> Optional[str]:
    text = args.text or args.text_pos
    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        text = Path(args.file).read_text(encoding="utf-8")
        if not text.strip():
            raise SystemExit("Input file is empty.")
    return text


def _build_source(args: argparse.Namespace, config: ReaderConfig) -> Optional[ContentSource]:
    if args.base_url:
        return HttpContentSource(args.base_url, timeout_s=config.content.timeout_s)
    if args.dir:
        return DirectoryContentSource(args.dir)
    try:
        return build_content_source(config.content)
    except ConfigValidationError:
        return None


def _summary_for_text(text: str, config: ReaderConfig, pipeline: TextTransformPipeline) -> Dict[str, Any]:
    result = pipeline.transform(text)
    factors = result.expressive
    return {
        "text_len": len(text),
        "spoken_text": result.spoken_text,
        "speech_text": result.speech_text,
        "words": len(result.words),
        "emotion": factors.emotion,
        "factors": {
            "pitch": factors.pitch_factor,
            "rate": factors.rate_factor,
            "volume": factors.volume_factor,
        },
        "reading_seconds": estimate_duration(text, config.playback.words_per_minute),
        "speech_seconds": round(
            estimate_speech_seconds(
                result.spoken_text,
                config.playback.rate * factors.rate_factor,
                config.playback.seconds_per_char,
            ),
            3,
        ),
    }


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


async def _run(args: argparse.Namespace, config: ReaderConfig) -> Dict[str, Any]:
    engine_kwargs: Dict[str, Any] = {}
    engine_type = args.engine or config.playback.engine
    if engine_type in ("simulated", "sim", "fake"):
        engine_kwargs["word_interval_s"] = args.word_interval
    engine = get_engine(engine_type, **engine_kwargs)

    source = _build_source(args, config)
    if args.book and source is None:
        raise SystemExit("Provide --dir or --base-url (or content settings) with --book.")

    service = ReaderService(source or DirectoryContentSource(Path.cwd()), engine, config)
    try:
        service.update_audio_settings(
            voice=args.voice, rate=args.rate, pitch=args.pitch, volume=args.volume
        )

        if args.voices:
            voices = service.available_voices()
            return {"ok": True, "engine": engine.name, "voices": [asdict(v) for v in voices]}

        payload: Dict[str, Any] = {"ok": True}
        if args.book:
            book = await service.get_book(args.book)
            text = await service.get_chunk(args.book, args.chunk)
            payload["book"] = book.to_dict()
            payload["chunk"] = args.chunk
        else:
            text = _load_text(args)
            if not text:
                raise SystemExit("Provide --text, a positional text, --file or --book.")

        if args.estimate:
            payload["reading_seconds"] = service.estimate_duration(text)

        if args.dry_run:
            payload["dry_run"] = True
            payload["item"] = _summary_for_text(text, config, service.pipeline)
        elif not args.estimate:
            highlights: List[Dict[str, Any]] = []

            def on_word(event: WordBoundaryEvent) -> None:
                highlights.append(asdict(event))
                if not args.json:
                    print(f"[{event.index:>4}] {event.start_offset:>5}-{event.end_offset:<5} {event.word}")

            outcome = await service.speak(text, on_word_boundary=on_word)
            payload["outcome"] = outcome.value
            payload["words"] = len(highlights)
            payload["voice"] = asdict(service.voice_params)

        if args.book and args.prefetch:
            await service.prefetch(args.book, args.chunk, args.prefetch)
            payload["prefetched"] = args.prefetch
        payload["stats"] = service.stats()
        return payload
    finally:
        await service.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 success, 1 reader error, 2 invalid configuration).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("reader-speech.cli")
    set_trace_id(str(uuid4())[:12])

    try:
        config = _load_settings(args.settings).get_reader_config()
    except ConfigValidationError as e:
        _emit({"ok": False, "error": "INVALID_CONFIG", "message": str(e)}, args.json)
        return 2

    info(log, "cli_start", engine=args.engine or config.playback.engine, book=args.book)

    try:
        payload = asyncio.run(_run(args, config))
    except ReaderError as e:
        _emit(e.to_dict(), args.json)
        return 1

    _emit(payload, args.json)
    print("DRY_RUN_OK" if args.dry_run else "CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
