"""
Tests for PlaybackController session handling.

Most tests drive a FakeEngine by hand: the engine records each utterance
and the test fires its callbacks, so ordering is fully deterministic.
"""

import asyncio
from typing import List

import pytest

from reader_speech.errors import EngineError
from reader_speech.speech.engine import EngineCapabilities, SpeechEngine, UtteranceCallbacks, VoiceParams


class FakeEngine(SpeechEngine):
    """Engine whose notifications are fired by the test."""
    name = "fake"
    capabilities = EngineCapabilities(
        word_boundaries=True,
        native_timing=False,
        pause=True,
        markup=True,
    )

    def __init__(self, reject: Exception = None):
        super().__init__()
        self.reject = reject
        self.utterances: List[tuple] = []
        self.cancel_calls = 0
        self.pause_calls = 0
        self.resume_calls = 0

    def speak(self, text, params, callbacks):
        if self.reject is not None:
            raise self.reject
        self.utterances.append((text, params, callbacks))

    @property
    def callbacks(self) -> UtteranceCallbacks:
        return self.utterances[-1][2]

    def cancel(self):
        self.cancel_calls += 1

    def pause(self):
        self.pause_calls += 1

    def resume(self):
        self.resume_calls += 1


class NativeTimingEngine(FakeEngine):
    name = "native"
    capabilities = EngineCapabilities(
        word_boundaries=True,
        native_timing=True,
        pause=False,
        markup=False,
    )


def _controller(engine=None, **kwargs):
    from reader_speech.speech.playback import PlaybackController

    kwargs.setdefault("progress_interval_s", 0.01)
    return PlaybackController(engine or FakeEngine(), **kwargs)


class TestStart:
    """Tests for start()."""

    def test_start_enters_speaking(self):
        from reader_speech.speech.playback import PlaybackState

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            assert controller.state is PlaybackState.IDLE

            session = controller.start("Hello world.")

            assert controller.state is PlaybackState.SPEAKING
            assert controller.current_session is session
            assert engine.utterances[0][0] == session.transformed.speech_text
            assert session.words == ["Hello", "world", "."]
            controller.stop()

        asyncio.run(run())

    def test_emotion_applied_to_params(self):
        """Engine receives base parameters times the emotion factors."""

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            session = controller.start("AMAZING!!", VoiceParams(rate=1.0, pitch=1.0, volume=0.5))
            controller.stop()
            return engine, session

        engine, session = asyncio.run(run())

        sent = engine.utterances[0][1]
        assert sent == session.params
        assert sent.pitch == pytest.approx(1.3)
        assert sent.rate == pytest.approx(1.2)
        assert sent.volume == pytest.approx(0.5)

    def test_restart_cancels_exactly_once(self):
        """start() while speaking cancels the engine once and ends the old session."""
        from reader_speech.speech.playback import PlaybackState, SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            ends = []

            first = controller.start("first utterance", on_end=ends.append)
            second = controller.start("second utterance")

            assert engine.cancel_calls == 1
            assert first.outcome is SessionOutcome.CANCELLED
            assert ends == [SessionOutcome.CANCELLED]
            assert controller.current_session is second
            assert controller.state is PlaybackState.SPEAKING

            await asyncio.sleep(0)
            assert first.timer_task.done()
            assert not second.timer_task.done()
            controller.stop()

        asyncio.run(run())

    def test_restart_from_end_callback_is_replaced(self):
        """A session started by on_end of the replaced one is cancelled too."""
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            chained = []

            def next_page(outcome):
                if outcome is SessionOutcome.CANCELLED and not chained:
                    chained.append(controller.start("next page text"))

            first = controller.start("current page text", on_end=next_page)
            latest = controller.start("jump to another page")
            await asyncio.sleep(0)

            auto = chained[0]
            assert first.outcome is SessionOutcome.CANCELLED
            assert auto.outcome is SessionOutcome.CANCELLED
            assert auto.timer_task.done()
            assert engine.cancel_calls == 2
            assert controller.current_session is latest
            assert not latest.timer_task.done()

            controller.stop()
            await asyncio.sleep(0)
            assert latest.timer_task.done()
            assert controller.current_session is None

        asyncio.run(run())

    def test_wait_without_outcome_raises(self):
        """A done signal with no recorded outcome is an error, not None."""

        async def run():
            controller = _controller()
            session = controller.start("words")
            controller.stop()
            session.outcome = None
            await session.wait()

        with pytest.raises(RuntimeError, match="without an outcome"):
            asyncio.run(run())

    def test_stale_notifications_ignored(self):
        """Late events from a replaced session do not touch the new one."""
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            events = []

            controller.start("old words here")
            stale = engine.callbacks
            second = controller.start("new words", on_word_boundary=events.append)

            stale.on_word_boundary(0)
            stale.on_end()
            stale.on_error(RuntimeError("late"))

            assert events == []
            assert second.cursor == 0
            assert second.outcome is None
            assert controller.current_session is second

            engine.callbacks.on_end()
            assert await second.wait() is SessionOutcome.ENDED

        asyncio.run(run())

    def test_sync_rejection_returns_to_idle(self):
        """An engine exception in speak() fails the session and raises EngineError."""
        from reader_speech.speech.playback import PlaybackState, SessionOutcome

        async def run():
            controller = _controller(FakeEngine(reject=RuntimeError("no audio device")))
            ends = []

            with pytest.raises(EngineError, match="no audio device"):
                controller.start("hello", on_end=ends.append)

            assert controller.state is PlaybackState.IDLE
            assert controller.current_session is None
            assert ends == [SessionOutcome.FAILED]

        asyncio.run(run())

    def test_sync_engine_error_passed_through(self):
        """An EngineError from speak() is raised as is."""

        async def run():
            rejection = EngineError("voice missing")
            controller = _controller(FakeEngine(reject=rejection))
            with pytest.raises(EngineError) as info:
                controller.start("hello")
            assert info.value is rejection

        asyncio.run(run())


class TestWordBoundaries:
    """Tests for boundary-to-word pairing."""

    def test_events_follow_words(self):
        from reader_speech.speech.playback import WordBoundaryEvent

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            events = []

            controller.start("Call me Ishmael", on_word_boundary=events.append)
            for offset in (0, 5, 8):
                engine.callbacks.on_word_boundary(offset)
            controller.stop()
            return events

        events = asyncio.run(run())

        assert events == [
            WordBoundaryEvent("Call", 0, 4, 0),
            WordBoundaryEvent("me", 5, 7, 1),
            WordBoundaryEvent("Ishmael", 8, 15, 2),
        ]

    def test_extra_boundaries_dropped(self):
        """Boundaries past the last word are dropped and counted."""
        from reader_speech.core.metrics import metrics

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            events = []

            session = controller.start("two words", on_word_boundary=events.append)
            for offset in range(5):
                engine.callbacks.on_word_boundary(offset)
            controller.stop()
            return session, events

        before = metrics.sample("reader_word_boundaries_dropped_total")
        session, events = asyncio.run(run())
        after = metrics.sample("reader_word_boundaries_dropped_total")

        assert [e.word for e in events] == ["two", "words"]
        assert session.cursor == 2
        assert after == before + 3

    def test_failing_callback_does_not_stop_playback(self):
        """A UI callback that raises is logged and playback continues."""
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)

            def explode(event):
                raise ValueError("ui broke")

            session = controller.start("a b", on_word_boundary=explode)
            engine.callbacks.on_word_boundary(0)
            engine.callbacks.on_word_boundary(2)
            engine.callbacks.on_end()
            return session, await session.wait()

        session, outcome = asyncio.run(run())
        assert session.cursor == 2
        assert outcome is SessionOutcome.ENDED


class TestEndings:
    """Tests for the ways a session ends."""

    def test_engine_end(self):
        from reader_speech.speech.playback import PlaybackState, SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            ends = []

            session = controller.start("done soon", on_end=ends.append)
            engine.callbacks.on_end()
            engine.callbacks.on_end()

            assert controller.state is PlaybackState.IDLE
            assert ends == [SessionOutcome.ENDED]
            await asyncio.sleep(0)
            assert session.timer_task.done()
            return await session.wait()

        assert asyncio.run(run()) is SessionOutcome.ENDED

    def test_engine_error(self):
        """An asynchronous engine error fails the session."""
        from reader_speech.speech.playback import PlaybackState, SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            ends = []

            session = controller.start("will fail", on_end=ends.append)
            engine.callbacks.on_error(RuntimeError("device lost"))

            assert controller.state is PlaybackState.IDLE
            assert ends == [SessionOutcome.FAILED]
            assert session.outcome is SessionOutcome.FAILED
            await session.wait()

        with pytest.raises(EngineError, match="device lost"):
            asyncio.run(run())

    def test_stop_is_idempotent(self):
        from reader_speech.speech.playback import PlaybackState, SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            ends = []

            controller.stop()
            assert engine.cancel_calls == 0

            session = controller.start("stop me", on_end=ends.append)
            controller.stop()
            controller.stop()

            assert engine.cancel_calls == 1
            assert ends == [SessionOutcome.CANCELLED]
            assert controller.state is PlaybackState.IDLE
            return await session.wait()

        assert asyncio.run(run()) is SessionOutcome.CANCELLED

    def test_end_after_stop_ignored(self):
        """The engine's own end after stop() does not end the session twice."""
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            ends = []

            controller.start("x", on_end=ends.append)
            callbacks = engine.callbacks
            controller.stop()
            callbacks.on_end()
            return ends

        assert asyncio.run(run()) == [SessionOutcome.CANCELLED]

    def test_session_metrics(self):
        from reader_speech.core.metrics import metrics

        def count(outcome):
            return metrics.sample("reader_playback_sessions_total", {"outcome": outcome})

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            controller.start("one")
            controller.start("two")
            engine.callbacks.on_end()

        before = (count("ended"), count("cancelled"))
        asyncio.run(run())
        assert (count("ended"), count("cancelled")) == (before[0] + 1, before[1] + 1)


class TestPause:
    """Tests for pause()/resume()."""

    def test_pause_resume_delegate(self):
        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            controller.start("pausable text")

            controller.pause()
            assert controller.paused
            assert engine.pause_calls == 1

            controller.resume()
            assert not controller.paused
            assert engine.resume_calls == 1
            controller.stop()

        asyncio.run(run())

    def test_start_while_paused_resumes_engine(self):
        """A new utterance never starts on a paused engine."""

        async def run():
            engine = FakeEngine()
            controller = _controller(engine)
            controller.start("first")
            controller.pause()

            controller.start("second")

            assert not controller.paused
            assert engine.resume_calls == 1
            controller.stop()

        asyncio.run(run())

    def test_engine_without_pause(self):
        """Pause is tracked even when the engine cannot pause."""

        async def run():
            engine = NativeTimingEngine()
            controller = _controller(engine)
            controller.start("text")
            controller.pause()

            assert controller.paused
            assert engine.pause_calls == 0
            controller.stop()

        asyncio.run(run())


class TestProgress:
    """Tests for the estimate timer."""

    def test_progress_reaches_estimate(self):
        async def run():
            engine = FakeEngine()
            controller = _controller(engine, seconds_per_char=0.01)
            ticks = []

            session = controller.start("abc", on_progress=ticks.append)
            assert session.estimated_duration_s == pytest.approx(0.03)

            await asyncio.wait_for(session.timer_task, timeout=2.0)
            controller.stop()
            return session, ticks

        session, ticks = asyncio.run(run())

        assert ticks
        assert ticks == sorted(ticks)
        assert ticks[-1] == pytest.approx(session.estimated_duration_s)
        assert session.elapsed_s == pytest.approx(session.estimated_duration_s)

    def test_progress_frozen_while_paused(self):
        async def run():
            engine = FakeEngine()
            controller = _controller(engine, seconds_per_char=1.0)
            ticks = []

            session = controller.start("long enough text", on_progress=ticks.append)
            controller.pause()
            await asyncio.sleep(0.05)
            paused_ticks = list(ticks)

            controller.resume()
            await asyncio.sleep(0.05)
            controller.stop()
            return session, paused_ticks, ticks

        session, paused_ticks, ticks = asyncio.run(run())

        assert paused_ticks == []
        assert ticks
        assert session.elapsed_s > 0

    def test_timer_cancelled_on_stop(self):
        async def run():
            controller = _controller(FakeEngine(), seconds_per_char=1.0)
            session = controller.start("a long running utterance")
            controller.stop()
            await asyncio.sleep(0)
            return session

        session = asyncio.run(run())
        assert session.timer_task.cancelled()

    def test_native_timing_has_no_timer(self):
        async def run():
            controller = _controller(NativeTimingEngine())
            session = controller.start("text")
            controller.stop()
            return session

        assert asyncio.run(run()).timer_task is None

    def test_rate_shortens_estimate(self):
        async def run():
            controller = _controller(FakeEngine(), seconds_per_char=0.1)
            slow = controller.start("abcd", VoiceParams(rate=1.0))
            fast = controller.start("abcd", VoiceParams(rate=2.0))
            controller.stop()
            return slow, fast

        slow, fast = asyncio.run(run())
        assert slow.estimated_duration_s == pytest.approx(0.4)
        assert fast.estimated_duration_s == pytest.approx(0.2)


class TestEstimates:
    """Tests for the module-level estimate helpers."""

    @pytest.mark.parametrize("text,expected", [
        ("", 0),
        ("word", 1),
        ("word " * 200, 60),
        ("word " * 201, 61),
    ])
    def test_estimate_duration(self, text, expected):
        from reader_speech.speech.playback import estimate_duration

        assert estimate_duration(text) == expected

    def test_estimate_speech_seconds(self):
        from reader_speech.speech.playback import estimate_speech_seconds

        assert estimate_speech_seconds("x" * 10, rate=1.0, seconds_per_char=0.06) == pytest.approx(0.6)
        assert estimate_speech_seconds("x" * 10, rate=2.0, seconds_per_char=0.06) == pytest.approx(0.3)
        assert estimate_speech_seconds("x" * 10, rate=0, seconds_per_char=0.06) == pytest.approx(0.6)


class TestSimulatedEngine:
    """End to end with the simulated engine."""

    def test_speak_to_end(self):
        from reader_speech.speech.engines.simulated import SimulatedSpeechEngine
        from reader_speech.speech.playback import SessionOutcome, WordBoundaryEvent

        async def run():
            controller = _controller(SimulatedSpeechEngine())
            events = []
            outcome = await controller.speak("Call me Ishmael.", on_word_boundary=events.append)
            return outcome, events

        outcome, events = asyncio.run(run())

        assert outcome is SessionOutcome.ENDED
        assert events == [
            WordBoundaryEvent("Call", 0, 4, 0),
            WordBoundaryEvent("me", 5, 7, 1),
            WordBoundaryEvent("Ishmael", 8, 15, 2),
            WordBoundaryEvent(".", 16, 17, 3),
        ]

    def test_markup_skipped_by_engine(self):
        """Boundaries land on spoken words even with markup in the text."""
        from reader_speech.speech.engines.simulated import SimulatedSpeechEngine

        async def run():
            controller = _controller(SimulatedSpeechEngine())
            events = []
            await controller.speak("One, two.", on_word_boundary=events.append)
            return events

        events = asyncio.run(run())
        assert [e.word for e in events] == ["One", ",", "two", "."]

    def test_restart_with_simulated_engine(self):
        from reader_speech.speech.engines.simulated import SimulatedSpeechEngine
        from reader_speech.speech.playback import SessionOutcome

        async def run():
            engine = SimulatedSpeechEngine(word_interval_s=0.01)
            controller = _controller(engine)
            first_events = []

            first = controller.start("one two three four five", on_word_boundary=first_events.append)
            await asyncio.sleep(0.015)
            second = controller.start("six")
            outcome = await second.wait()
            return engine, first, first_events, outcome

        engine, first, first_events, outcome = asyncio.run(run())

        assert engine.cancel_calls == 1
        assert first.outcome is SessionOutcome.CANCELLED
        assert len(first_events) < 5
        assert outcome is SessionOutcome.ENDED

    def test_simulated_rejects_negative_volume(self):
        from reader_speech.speech.engines.simulated import SimulatedSpeechEngine
        from reader_speech.speech.playback import PlaybackState

        async def run():
            controller = _controller(SimulatedSpeechEngine())
            with pytest.raises(EngineError):
                controller.start("hi", VoiceParams(volume=-1.0))
            return controller

        assert asyncio.run(run()).state is PlaybackState.IDLE
