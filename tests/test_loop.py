import logging

import pytest

from kids3d_teacher.speech.capture import (
    CaptureErrorKind,
    CaptureStartError,
    RecognitionEvent,
    RecognitionResult,
)
from kids3d_teacher.speech.device import DeviceProfile
from kids3d_teacher.speech.loop import (
    PERMISSION_NOTICE,
    UNSUPPORTED_NOTICE,
    CaptureState,
    TurnTakingLoop,
)
from kids3d_teacher.speech.signals import Signal, SignalBus

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15"


class Recorder:
    def __init__(self):
        self.texts = []

    def __call__(self, text, is_final):
        assert is_final is True
        self.texts.append(text)


@pytest.fixture
def bus():
    return SignalBus()


@pytest.fixture
def loop(engines, scheduler, bus):
    return TurnTakingLoop(engines, scheduler, bus=bus)


@pytest.fixture
def heard():
    return Recorder()


def test_final_result_is_delivered_once(loop, engines, heard):
    loop.start(heard)
    engine = engines.latest
    assert loop.state is CaptureState.LISTENING

    engine.final("hello there")

    assert heard.texts == ["hello there"]
    assert engine.stopped
    assert loop.state is CaptureState.IDLE

    # A released engine can no longer reach the loop
    engine.final("late result")
    assert heard.texts == ["hello there"]


def test_silence_finalizes_interim_text(loop, engines, scheduler, heard):
    loop.start(heard)
    engine = engines.latest

    engine.interim("I like")
    scheduler.advance(0.5)
    engine.interim("I like mangoes")
    scheduler.advance(0.5)
    assert heard.texts == []

    scheduler.advance(0.2)
    assert heard.texts == ["I like mangoes"]


def test_final_and_trailing_interim_are_combined(loop, engines, heard):
    loop.start(heard)
    engines.latest.emit(RecognitionEvent(results=[
        RecognitionResult(["Hello"], is_final=True),
        RecognitionResult(["my name is Asha"], is_final=False),
    ]))
    assert heard.texts == ["Hello my name is Asha"]


def test_already_reported_results_are_skipped(loop, engines, scheduler, heard):
    loop.start(heard)
    engines.latest.emit(RecognitionEvent(
        results=[RecognitionResult(["old"], is_final=True), RecognitionResult(["new words"])],
        result_index=1,
    ))
    scheduler.advance(0.6)
    assert heard.texts == ["new words"]


def test_engine_end_flushes_pending_text(loop, engines, heard):
    loop.start(heard)
    engines.latest.interim("almost done")
    engines.latest.end()
    assert heard.texts == ["almost done"]


def test_empty_results_are_not_delivered(loop, engines, scheduler, heard):
    loop.start(heard)
    engines.latest.interim("   ")
    scheduler.advance(1.0)
    engines.latest.end()
    assert heard.texts == []
    assert loop.state is CaptureState.IDLE


def test_start_while_listening_only_rearms_callback(loop, engines, heard):
    first = Recorder()
    loop.start(first)
    loop.start(heard)

    assert len(engines.engines) == 1
    engines.latest.final("who gets it")
    assert first.texts == []
    assert heard.texts == ["who gets it"]


def test_stop_is_idempotent(loop, engines, bus, heard):
    stopped = []
    bus.subscribe(Signal.CAPTURE_STOPPED, lambda **_: stopped.append(True))

    loop.start(heard)
    engine = engines.latest
    engine.interim("half a sent")
    loop.stop()
    loop.stop()

    assert stopped == [True]
    assert loop.state is CaptureState.IDLE
    assert engine.stopped
    engine.final("ignored")
    assert heard.texts == []


def test_stop_from_any_state_then_start_again(loop, engines, scheduler, bus, heard):
    # Listening with interim text and a silence timer pending
    loop.start(heard, continuous=True)
    listening = engines.latest
    listening.interim("half a sent")
    loop.stop()
    assert loop.state is CaptureState.IDLE
    assert scheduler.pending == []

    # Suspended with the resume timer pending
    loop.start(heard, continuous=True)
    bus.emit(Signal.SPEAK_START, text="Hi!")
    bus.emit(Signal.SPEAK_STOP)
    assert loop.state is CaptureState.SUSPENDED
    assert scheduler.pending
    loop.stop()
    assert loop.state is CaptureState.IDLE
    assert scheduler.pending == []

    # Idle with a restart pending
    loop.start(heard, continuous=True)
    engines.latest.final("one")
    assert loop.state is CaptureState.IDLE
    assert scheduler.pending
    loop.stop()
    assert scheduler.pending == []
    scheduler.advance(5)
    count = len(engines.engines)

    loop.start(heard)
    fresh = engines.latest
    assert len(engines.engines) == count + 1
    listening.final("stale")
    fresh.final("two")
    fresh.final("two again")
    assert heard.texts == ["one", "two"]


def test_suspending_logs_dropped_interim(loop, engines, bus, heard, caplog):
    caplog.set_level(logging.DEBUG, logger="kids3d_teacher.speech.loop")
    loop.start(heard)
    engines.latest.interim("half a thought")

    bus.emit(Signal.SPEAK_START, text="Hello!")

    assert "half a thought" in caplog.text
    assert heard.texts == []


def test_capture_started_signal(loop, bus, heard):
    started = []
    bus.subscribe(Signal.CAPTURE_STARTED, lambda **_: started.append(True))
    loop.start(heard)
    assert started == [True]


def test_continuous_mode_reopens_after_utterance(loop, engines, scheduler, heard):
    loop.start(heard, continuous=True)
    engines.latest.final("one")

    assert loop.state is CaptureState.IDLE
    scheduler.advance(0.3)
    assert len(engines.engines) == 2
    assert loop.state is CaptureState.LISTENING

    engines.latest.final("two")
    assert heard.texts == ["one", "two"]


def test_continuous_mode_reopens_after_engine_end(loop, engines, scheduler, heard):
    loop.start(heard, continuous=True)
    engines.latest.end()
    scheduler.advance(0.29)
    assert len(engines.engines) == 1
    scheduler.advance(0.01)
    assert len(engines.engines) == 2


def test_single_mode_does_not_reopen(loop, engines, scheduler, heard):
    loop.start(heard)
    engines.latest.final("just once")
    scheduler.advance(10)
    assert len(engines.engines) == 1


def test_failed_restart_is_retried_once(loop, engines, scheduler, heard):
    loop.start(heard, continuous=True)
    engines.fail_next = 2
    engines.latest.end()

    scheduler.advance(0.3)
    assert len(engines.engines) == 2
    scheduler.advance(1.5)
    assert len(engines.engines) == 3

    assert loop.state is CaptureState.IDLE
    assert scheduler.pending == []


def test_restart_retry_can_succeed(loop, engines, scheduler, heard):
    loop.start(heard, continuous=True)
    engines.fail_next = 1
    engines.latest.end()

    scheduler.advance(0.3)
    scheduler.advance(1.5)
    assert len(engines.engines) == 3
    assert loop.state is CaptureState.LISTENING


def test_start_while_speaking_is_deferred(loop, engines, scheduler, bus, heard):
    bus.emit(Signal.SPEAK_START, text="Hello!")
    loop.start(heard)

    assert engines.engines == []
    assert loop.state is CaptureState.SUSPENDED

    bus.emit(Signal.SPEAK_STOP)
    scheduler.advance(0.7)
    assert engines.engines == []
    scheduler.advance(0.1)
    assert len(engines.engines) == 1
    assert loop.state is CaptureState.LISTENING


def test_speech_output_suspends_active_capture(loop, engines, scheduler, bus, heard):
    loop.start(heard, continuous=True)
    first = engines.latest
    first.interim("half")

    bus.emit(Signal.SPEAK_START, text="Great job!")
    assert first.stopped
    assert loop.state is CaptureState.SUSPENDED
    scheduler.advance(5)
    assert heard.texts == []
    assert len(engines.engines) == 1

    bus.emit(Signal.SPEAK_STOP)
    scheduler.advance(0.8)
    assert len(engines.engines) == 2

    first.final("stale")
    engines.latest.final("fresh")
    assert heard.texts == ["fresh"]


def test_no_capture_engine_is_alive_while_speaking(loop, engines, scheduler, bus, heard):
    loop.start(heard, continuous=True)
    engines.latest.final("hi")
    bus.emit(Signal.SPEAK_START, text="Hello!")

    # The pending restart must not fire during output
    scheduler.advance(2)
    assert len(engines.engines) == 1
    assert all(e.stopped for e in engines.engines)


def test_single_mode_stays_idle_after_reply(loop, engines, scheduler, bus, heard):
    loop.start(heard)
    engines.latest.final("hi")
    bus.emit(Signal.SPEAK_START, text="Hello!")
    bus.emit(Signal.SPEAK_STOP)
    scheduler.advance(5)

    assert len(engines.engines) == 1
    assert loop.state is CaptureState.IDLE


def test_callback_failure_does_not_break_the_loop(loop, engines, scheduler):
    def explode(text, is_final):
        raise ValueError("downstream failure")

    loop.start(explode, continuous=True)
    engines.latest.final("boom")

    assert loop.state is CaptureState.IDLE
    scheduler.advance(0.3)
    assert loop.state is CaptureState.LISTENING


def test_callback_may_stop_the_loop(loop, engines, scheduler):
    def stop_now(text, is_final):
        loop.stop()

    loop.start(stop_now, continuous=True)
    engines.latest.final("bye")
    scheduler.advance(5)

    assert len(engines.engines) == 1
    assert loop.state is CaptureState.IDLE


def test_permission_error_notifies_and_stops_restarting(engines, scheduler, bus, heard):
    notices = []
    errors = []
    bus.subscribe(Signal.CAPTURE_ERROR, lambda **kw: errors.append(kw))
    loop = TurnTakingLoop(engines, scheduler, bus=bus, notify=notices.append)

    loop.start(heard, continuous=True)
    engines.latest.error("not-allowed")
    engines.latest.end()
    scheduler.advance(5)

    assert notices == [PERMISSION_NOTICE]
    assert errors == [{"code": "not-allowed", "kind": CaptureErrorKind.PERMISSION}]
    assert not loop.continuous
    assert len(engines.engines) == 1
    assert loop.state is CaptureState.IDLE


def test_no_speech_is_benign(engines, scheduler, bus, heard):
    notices = []
    loop = TurnTakingLoop(engines, scheduler, bus=bus, notify=notices.append)

    loop.start(heard, continuous=True)
    engines.latest.error("no-speech")
    engines.latest.end()
    scheduler.advance(0.3)

    assert notices == []
    assert len(engines.engines) == 2


def test_unavailable_capture_is_reported(scheduler, heard):
    notices = []
    loop = TurnTakingLoop(None, scheduler, notify=notices.append)

    loop.start(heard)

    assert not loop.available
    assert notices == [UNSUPPORTED_NOTICE]
    assert loop.state is CaptureState.IDLE


def test_factory_failure_raises_start_error(scheduler, heard):
    def broken(options):
        raise OSError("no microphone")

    loop = TurnTakingLoop(broken, scheduler)
    with pytest.raises(CaptureStartError):
        loop.start(heard)
    assert loop.state is CaptureState.IDLE


def test_engine_options_follow_device(engines, scheduler, heard):
    desktop = TurnTakingLoop(engines, scheduler)
    desktop.start(heard, lang="en-IN")
    assert engines.latest.options.continuous is True
    assert engines.latest.options.lang == "en-IN"
    assert engines.latest.options.interim_results is True

    phone = DeviceProfile.from_user_agent(IPHONE_UA)
    mobile = TurnTakingLoop(engines, scheduler, device=phone)
    assert mobile.timings.silence == pytest.approx(0.7)
    mobile.start(heard)
    assert engines.latest.options.continuous is False


def test_mobile_silence_window(engines, scheduler, heard):
    loop = TurnTakingLoop(engines, scheduler, device=DeviceProfile.from_user_agent(IPHONE_UA))
    loop.start(heard)
    engines.latest.interim("slow speaker")
    scheduler.advance(0.65)
    assert heard.texts == []
    scheduler.advance(0.1)
    assert heard.texts == ["slow speaker"]


def test_close_unsubscribes_from_speech_signals(loop, bus):
    loop.close()
    bus.emit(Signal.SPEAK_START, text="Hi")
    assert not loop.speaking
