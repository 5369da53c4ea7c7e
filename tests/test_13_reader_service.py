"""
Tests for ReaderService, the composition root used by the UI layer.
"""

import asyncio
import json

import pytest

from reader_speech.errors import InvalidInputError, NotFoundError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("READER_SPEECH_CONTENT_URL", "READER_SPEECH_CONTENT_DIR", "READER_SPEECH_ENGINE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def library(tmp_path):
    """Directory library with one five-chunk book."""
    book = tmp_path / "moby"
    book.mkdir()
    (book / "book.json").write_text(json.dumps({"title": "Moby Dick", "pages": 5}), encoding="utf-8")
    texts = [
        "Call me Ishmael.",
        "Some years ago, never mind how long precisely.",
        "Having little or no money in my purse.",
        "I thought I would sail about a little.",
        "It is a way I have of driving off the spleen.",
    ]
    for i, text in enumerate(texts):
        (book / f"{i}.txt").write_text(text, encoding="utf-8")
    return tmp_path


class CountingSource:
    """Wraps a ContentSource and counts calls."""

    def __init__(self, inner):
        self.inner = inner
        self.chunk_calls = []
        self.book_calls = 0
        self.closed = False

    async def fetch_chunk(self, content_id, index):
        self.chunk_calls.append(index)
        return await self.inner.fetch_chunk(content_id, index)

    async def fetch_book(self, content_id):
        self.book_calls += 1
        return await self.inner.fetch_book(content_id)

    async def aclose(self):
        self.closed = True


def _service(library, **config_raw):
    from reader_speech.content.source import DirectoryContentSource
    from reader_speech.core.config import Settings
    from reader_speech.services.reader_service import ReaderService
    from reader_speech.speech.engines.simulated import SimulatedSpeechEngine

    config = Settings(raw=config_raw).get_reader_config()
    source = CountingSource(DirectoryContentSource(library))
    return ReaderService(source, SimulatedSpeechEngine(), config), source


class TestContent:
    """Book and chunk access."""

    def test_book_cached(self, library):
        async def run():
            service, source = _service(library)
            first = await service.get_book("moby")
            second = await service.get_book("moby")
            await service.aclose()
            return first, second, source

        first, second, source = asyncio.run(run())
        assert first == second
        assert first.title == "Moby Dick"
        assert source.book_calls == 1

    def test_chunk_cached(self, library):
        async def run():
            service, source = _service(library)
            await service.get_chunk("moby", 2)
            text = await service.get_chunk("moby", 2)
            await service.aclose()
            return text, source

        text, source = asyncio.run(run())
        assert text == "Having little or no money in my purse."
        assert source.chunk_calls == [2]

    def test_change_page_prefetches_in_background(self, library):
        async def run():
            service, source = _service(library)
            text = await service.change_page("moby", 0)
            await service.wait_background()
            stats = service.stats()
            await service.aclose()
            return text, source, stats

        text, source, stats = asyncio.run(run())
        assert text == "Call me Ishmael."
        assert sorted(source.chunk_calls) == [0, 1, 2, 3]
        assert stats["chunks"]["size"] == 4
        assert stats["in_flight"] == 0
        assert stats["background_tasks"] == 0

    def test_next_page_served_from_prefetch(self, library):
        async def run():
            service, source = _service(library)
            await service.change_page("moby", 0)
            await service.wait_background()
            await service.change_page("moby", 1)
            await service.aclose()
            return source

        source = asyncio.run(run())
        # 1 came from the cache; the second page change only added 4
        assert sorted(source.chunk_calls) == [0, 1, 2, 3, 4]

    def test_prefetch_past_last_chunk(self, library):
        """Warming beyond the book end is silent."""

        async def run():
            service, source = _service(library)
            await service.change_page("moby", 3)
            await service.wait_background()
            stats = service.stats()
            await service.aclose()
            return stats

        stats = asyncio.run(run())
        assert stats["chunks"]["size"] == 2

    def test_prefetch_disabled(self, library):
        async def run():
            service, source = _service(library, prefetch={"count": 0})
            await service.change_page("moby", 0)
            await service.wait_background()
            await service.aclose()
            return source

        assert asyncio.run(run()).chunk_calls == [0]

    def test_missing_chunk_raises(self, library):
        async def run():
            service, _ = _service(library)
            try:
                await service.get_chunk("moby", 99)
            finally:
                await service.aclose()

        with pytest.raises(NotFoundError):
            asyncio.run(run())

    @pytest.mark.parametrize("content_id,index", [
        ("", 0),
        ("moby", -1),
        ("../etc", 0),
        ("moby", True),
    ])
    def test_invalid_chunk_request(self, library, content_id, index):
        async def run():
            service, _ = _service(library)
            try:
                await service.get_chunk(content_id, index)
            finally:
                await service.aclose()

        with pytest.raises(InvalidInputError):
            asyncio.run(run())

    def test_clear_cache(self, library):
        async def run():
            service, source = _service(library)
            await service.get_book("moby")
            await service.get_chunk("moby", 0)
            removed = service.clear_cache()
            await service.get_chunk("moby", 0)
            await service.aclose()
            return removed, source

        removed, source = asyncio.run(run())
        assert removed == 2
        assert source.chunk_calls == [0, 0]

    def test_chunk_cache_capacity_from_config(self, library):
        async def run():
            service, _ = _service(library, cache={"chunk_capacity": 2}, prefetch={"count": 0})
            for i in range(4):
                await service.get_chunk("moby", i)
            stats = service.coordinator.cache.stats()
            await service.aclose()
            return stats

        stats = asyncio.run(run())
        assert stats["size"] == 2
        assert stats["evictions"] == 2


class TestSpeech:
    """Read-aloud through the service."""

    def test_read_aloud(self, library):
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            service, _ = _service(library)
            words = []
            session = await service.read_aloud("moby", 0, on_word_boundary=words.append)
            outcome = await session.wait()
            await service.aclose()
            return outcome, words

        outcome, words = asyncio.run(run())
        assert outcome is SessionOutcome.ENDED
        assert [w.word for w in words] == ["Call", "me", "Ishmael", "."]

    def test_speak_rejects_blank_text(self, library):
        async def run():
            service, _ = _service(library)
            try:
                await service.speak("   ")
            finally:
                await service.aclose()

        with pytest.raises(InvalidInputError):
            asyncio.run(run())

    def test_new_read_replaces_current(self, library):
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            service, _ = _service(library)
            first = service.start_speaking("one two three")
            second = service.start_speaking("four")
            outcome = await second.wait()
            cancel_calls = service.engine.cancel_calls
            await service.aclose()
            return first, outcome, cancel_calls

        first, outcome, cancel_calls = asyncio.run(run())
        assert first.outcome is SessionOutcome.CANCELLED
        assert outcome is SessionOutcome.ENDED
        assert cancel_calls == 1

    def test_stop_pause_resume(self, library):
        from reader_speech.speech.playback import PlaybackState

        async def run():
            service, _ = _service(library)
            service.start_speaking("some words to say")
            service.pause_speaking()
            paused = service.stats()["paused"]
            service.resume_speaking()
            service.stop_speaking()
            state = service.state
            await service.aclose()
            return paused, state

        paused, state = asyncio.run(run())
        assert paused is True
        assert state is PlaybackState.IDLE

    def test_update_audio_settings(self, library):
        from reader_speech.speech.engine import VoiceParams

        async def run():
            service, _ = _service(library)
            params = service.update_audio_settings(rate=1.5, volume=0.5)
            session = service.start_speaking("plain words")
            await session.wait()
            await service.aclose()
            return params, session, service.engine

        params, session, engine = asyncio.run(run())
        assert params == VoiceParams(voice="", rate=1.5, pitch=1.0, volume=0.5)
        assert session.params == params
        assert engine.spoken[-1][1] == params

    @pytest.mark.parametrize("kwargs,field", [
        ({"rate": 0.01}, "rate"),
        ({"pitch": 3.0}, "pitch"),
        ({"volume": 1.5}, "volume"),
    ])
    def test_update_audio_settings_rejected(self, library, kwargs, field):
        service, _ = _service(library)
        before = service.voice_params

        with pytest.raises(InvalidInputError) as exc:
            service.update_audio_settings(**kwargs)

        assert exc.value.details["field"] == field
        assert service.voice_params == before

    def test_estimate_duration(self, library):
        service, _ = _service(library, playback={"words_per_minute": 100})
        assert service.estimate_duration("word " * 100) == 60
        assert service.estimate_duration("") == 0

    def test_available_voices(self, library):
        service, _ = _service(library)
        assert [v.id for v in service.available_voices()] == ["sim-en-us", "sim-en-gb"]
        assert len(service.available_voices(min_score=0)) == 3

    def test_markup_follows_engine(self, library):
        """Engines without markup support get plain spoken text."""
        from reader_speech.content.source import DirectoryContentSource
        from reader_speech.services.reader_service import ReaderService
        from reader_speech.speech.engine import EngineCapabilities
        from reader_speech.speech.engines.simulated import SimulatedSpeechEngine

        class PlainEngine(SimulatedSpeechEngine):
            capabilities = EngineCapabilities(
                word_boundaries=True, native_timing=False, pause=True, markup=False
            )

        service = ReaderService(DirectoryContentSource(library), PlainEngine())
        assert service.pipeline.prosody_markup is False

        default = ReaderService(DirectoryContentSource(library), SimulatedSpeechEngine())
        assert default.pipeline.prosody_markup is True


class TestLifecycle:
    """Construction from settings and shutdown."""

    def test_from_settings_directory(self, library):
        from reader_speech.content.source import DirectoryContentSource
        from reader_speech.core.config import Settings
        from reader_speech.services.reader_service import ReaderService

        settings = Settings(raw={"content": {"root_dir": str(library)}, "cache": {"book_capacity": 3}})
        service = ReaderService.from_settings(settings)

        assert isinstance(service.source, DirectoryContentSource)
        assert service.engine.name == "simulated"
        assert service.books.capacity == 3

    def test_from_settings_http(self):
        from reader_speech.content.source import HttpContentSource
        from reader_speech.core.config import Settings
        from reader_speech.services.reader_service import ReaderService

        settings = Settings(raw={"content": {"base_url": "http://books.local", "root_dir": "ignored"}})
        service = ReaderService.from_settings(settings)

        assert isinstance(service.source, HttpContentSource)
        asyncio.run(service.aclose())

    def test_from_settings_without_source(self):
        from reader_speech.core.config import ConfigValidationError, Settings
        from reader_speech.services.reader_service import ReaderService

        with pytest.raises(ConfigValidationError):
            ReaderService.from_settings(Settings(raw={}))

    def test_aclose_releases_everything(self, library):
        from reader_speech.speech.playback import PlaybackState

        async def run():
            service, source = _service(library)
            service.start_speaking("words being spoken")
            await service.change_page("moby", 0)
            await service.aclose()
            return service, source

        service, source = asyncio.run(run())
        assert source.closed
        assert service.state is PlaybackState.IDLE
        assert service.stats()["background_tasks"] == 0

    def test_stats_keys(self, library):
        service, _ = _service(library)
        stats = service.stats()

        assert set(stats) == {
            "chunks", "books", "in_flight", "background_tasks", "state",
            "paused", "engine", "voice", "rules_version",
        }
        assert stats["state"] == "idle"
        assert stats["rules_version"] == "v1"
