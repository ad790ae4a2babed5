from __future__ import annotations

import asyncio

from conftest import FakeCapture, FakePlayback, make_client, reply_server, stalled_server, wait_for

from lyria_voice.errors import CaptureError, CapturePermissionDenied
from lyria_voice.replies import AudioReply, TextReply
from lyria_voice.session_client import Session
from lyria_voice.state_machine import LifecycleState, SessionStatus

UTTERANCE = b"\x01" * 5000


def test_text_reply_is_spoken_and_socket_closed() -> None:
    async def scenario():
        async with reply_server("hello") as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            assert await t.client.begin() is True
            result = await t.client.end()
            await wait_for(lambda: server.closed_by_client == 1)
            return t, server, result

    t, server, result = asyncio.run(scenario())

    assert result.status is SessionStatus.DONE
    assert result.reply == TextReply("hello")
    assert result.attempt_id == 1
    assert t.playback.spoken == ["hello"]
    assert t.playback.audio == []
    assert server.received == [UTTERANCE]
    assert isinstance(server.received[0], bytes)
    assert t.client.state is LifecycleState.IDLE
    assert t.client.session is None
    assert t.statuses == [
        SessionStatus.RECORDING,
        SessionStatus.SENDING,
        SessionStatus.AWAITING_REPLY,
        SessionStatus.DONE,
    ]


def test_binary_reply_is_played_as_audio() -> None:
    reply_bytes = b"ID3\x00fake-mp3"

    async def scenario():
        async with reply_server(reply_bytes) as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            await t.client.begin()
            result = await t.client.end()
            await wait_for(lambda: server.closed_by_client == 1)
            return t, result

    t, result = asyncio.run(scenario())

    assert result.status is SessionStatus.DONE
    assert result.reply == AudioReply(reply_bytes, "audio/mpeg")
    assert t.playback.audio == [(reply_bytes, "audio/mpeg")]
    assert t.playback.spoken == []


def test_only_first_message_is_consumed() -> None:
    async def scenario():
        async with reply_server("first", b"second") as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            await t.client.begin()
            result = await t.client.end()
            return t, result

    t, result = asyncio.run(scenario())

    assert result.reply == TextReply("first")
    assert t.playback.spoken == ["first"]
    assert t.playback.audio == []


def test_empty_capture_is_too_short_without_connecting() -> None:
    async def scenario():
        async with reply_server("unused") as server:
            t = make_client(server.url, FakeCapture(b""))
            await t.client.begin()
            result = await t.client.end()
            return t, server, result

    t, server, result = asyncio.run(scenario())

    assert result.status is SessionStatus.TOO_SHORT
    assert result.attempt_id is None
    assert server.connections == 0
    assert t.client.state is LifecycleState.IDLE
    assert t.statuses[-1] is SessionStatus.TOO_SHORT
    assert (LifecycleState.RECORDING, LifecycleState.SENDING) not in t.transitions


def test_threshold_is_inclusive() -> None:
    async def scenario(size: int):
        async with reply_server("ok") as server:
            t = make_client(server.url, FakeCapture(b"\x00" * size), min_utterance_bytes=3000)
            await t.client.begin()
            result = await t.client.end()
            return result, server.connections

    short, short_connections = asyncio.run(scenario(2999))
    exact, exact_connections = asyncio.run(scenario(3000))

    assert short.status is SessionStatus.TOO_SHORT
    assert short_connections == 0
    assert exact.status is SessionStatus.DONE
    assert exact_connections == 1


def test_permission_denied_returns_to_idle() -> None:
    async def scenario():
        t = make_client("ws://127.0.0.1:9/ws", FakeCapture(UTTERANCE, granted=False))
        started = await t.client.begin()
        return t, started

    t, started = asyncio.run(scenario())

    assert started is False
    assert t.client.state is LifecycleState.IDLE
    assert t.capture.started == 0
    assert t.statuses == [SessionStatus.PERMISSION_DENIED]


def test_permission_exception_counts_as_denied() -> None:
    async def scenario():
        capture = FakeCapture(UTTERANCE, granted=CapturePermissionDenied("blocked by OS"))
        t = make_client("ws://127.0.0.1:9/ws", capture)
        started = await t.client.begin()
        return t, started

    t, started = asyncio.run(scenario())

    assert started is False
    assert t.client.state is LifecycleState.IDLE
    assert t.statuses == [SessionStatus.PERMISSION_DENIED]


def test_capture_start_failure_is_reported() -> None:
    async def scenario():
        capture = FakeCapture(UTTERANCE, start_error=CaptureError("device busy"))
        t = make_client("ws://127.0.0.1:9/ws", capture)
        started = await t.client.begin()
        return t, started

    t, started = asyncio.run(scenario())

    assert started is False
    assert t.client.state is LifecycleState.IDLE
    assert t.statuses == [SessionStatus.CAPTURE_ERROR]


def test_refused_connection_is_a_connection_error(unused_url) -> None:
    async def scenario():
        t = make_client(unused_url, FakeCapture(UTTERANCE), open_timeout=2.0)
        await t.client.begin()
        result = await t.client.end()
        return t, result

    t, result = asyncio.run(scenario())

    assert result.status is SessionStatus.CONNECTION_ERROR
    assert result.reply is None
    assert t.client.state is LifecycleState.IDLE
    assert t.playback.audio == [] and t.playback.spoken == []
    assert SessionStatus.AWAITING_REPLY not in t.statuses


def test_close_before_reply_is_a_connection_error() -> None:
    async def scenario():
        async with reply_server() as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            await t.client.begin()
            result = await t.client.end()
            return t, server, result

    t, server, result = asyncio.run(scenario())

    assert server.received == [UTTERANCE]
    assert result.status is SessionStatus.CONNECTION_ERROR
    assert t.client.state is LifecycleState.IDLE
    assert t.statuses[-1] is SessionStatus.CONNECTION_ERROR


def test_reply_timeout_is_a_connection_error() -> None:
    async def scenario():
        async with reply_server(hold_open=True) as server:
            t = make_client(server.url, FakeCapture(UTTERANCE), reply_timeout=0.2)
            await t.client.begin()
            return await t.client.end()

    result = asyncio.run(scenario())

    assert result.status is SessionStatus.CONNECTION_ERROR


def test_playback_failure_still_completes_session() -> None:
    async def scenario():
        async with reply_server(b"\xff\xfb") as server:
            t = make_client(server.url, FakeCapture(UTTERANCE), FakePlayback(fail=True))
            await t.client.begin()
            result = await t.client.end()
            return t, result

    t, result = asyncio.run(scenario())

    assert result.status is SessionStatus.PLAYBACK_ERROR
    assert result.reply == AudioReply(b"\xff\xfb")
    assert t.client.state is LifecycleState.IDLE


def test_no_new_session_while_one_is_in_flight() -> None:
    async def scenario():
        async with reply_server(hold_open=True) as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            await t.client.begin()
            pending = asyncio.create_task(t.client.end())
            await wait_for(lambda: t.client.state is LifecycleState.AWAITING_REPLY)

            second_begin = await t.client.begin()
            second_end = await t.client.end()

            await t.client.abort()
            result = await pending
            return t, server, second_begin, second_end, result

    t, server, second_begin, second_end, result = asyncio.run(scenario())

    assert second_begin is False
    assert second_end is None
    assert server.connections == 1
    assert result.status is SessionStatus.ABORTED
    awaiting = [new for _, new in t.transitions if new is LifecycleState.AWAITING_REPLY]
    assert len(awaiting) == 1


def test_concurrent_begin_only_one_wins() -> None:
    async def scenario():
        t = make_client("ws://127.0.0.1:9/ws", FakeCapture(UTTERANCE))
        results = await asyncio.gather(t.client.begin(), t.client.begin())
        return t, results

    t, results = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert t.capture.started == 1
    assert t.client.state is LifecycleState.RECORDING


def test_abort_while_recording_discards_capture() -> None:
    async def scenario():
        t = make_client("ws://127.0.0.1:9/ws", FakeCapture(UTTERANCE))
        await t.client.begin()
        aborted = await t.client.abort()
        after = await t.client.end()
        return t, aborted, after

    t, aborted, after = asyncio.run(scenario())

    assert aborted is True
    assert after is None
    assert t.capture.stopped == 1
    assert t.client.capture_handle is None
    assert t.client.state is LifecycleState.IDLE
    assert t.statuses == [SessionStatus.RECORDING, SessionStatus.ABORTED]


def test_abort_when_idle_is_a_no_op() -> None:
    async def scenario():
        t = make_client("ws://127.0.0.1:9/ws", FakeCapture(UTTERANCE))
        return t, await t.client.abort()

    t, aborted = asyncio.run(scenario())

    assert aborted is False
    assert t.statuses == []


def test_abort_while_awaiting_reply_closes_session() -> None:
    async def scenario():
        async with reply_server(hold_open=True) as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            await t.client.begin()
            pending = asyncio.create_task(t.client.end())
            await wait_for(lambda: t.client.state is LifecycleState.AWAITING_REPLY)
            session = t.client.session
            await t.client.abort()
            result = await pending
            return t, session, result

    t, session, result = asyncio.run(scenario())

    assert result.status is SessionStatus.ABORTED
    assert result.attempt_id == session.attempt_id
    assert session.utterance is None
    assert session.connection is None
    assert t.client.session is None
    assert t.client.state is LifecycleState.IDLE
    assert SessionStatus.CONNECTION_ERROR not in t.statuses


def test_attempt_ids_increase_across_sessions() -> None:
    async def scenario():
        async with reply_server("a") as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            ids = []
            for _ in range(3):
                await t.client.begin()
                ids.append((await t.client.end()).attempt_id)
            return ids

    assert asyncio.run(scenario()) == [1, 2, 3]


def test_failing_status_callback_does_not_break_lifecycle() -> None:
    def explode(status):
        raise RuntimeError("ui gone")

    async def scenario():
        async with reply_server("hi") as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            t.client.on_status = explode
            await t.client.begin()
            return t, await t.client.end()

    t, result = asyncio.run(scenario())

    assert result.status is SessionStatus.DONE
    assert t.client.state is LifecycleState.IDLE


def test_unexpected_playback_exception_returns_to_idle() -> None:
    async def scenario():
        async with reply_server("hello") as server:
            t = make_client(server.url, FakeCapture(UTTERANCE), FakePlayback(error=KeyError("sapi5")))
            await t.client.begin()
            result = await t.client.end()
            restarted = await t.client.begin()
            return t, result, restarted

    t, result, restarted = asyncio.run(scenario())

    assert result.status is SessionStatus.PLAYBACK_ERROR
    assert result.reply == TextReply("hello")
    assert t.client.session is None
    assert restarted is True
    assert t.client.state is LifecycleState.RECORDING


def test_unexpected_capture_start_exception_is_a_capture_error() -> None:
    async def scenario():
        t = make_client("ws://127.0.0.1:9/ws", FakeCapture(UTTERANCE, start_error=ValueError("no stream")))
        return t, await t.client.begin()

    t, started = asyncio.run(scenario())

    assert started is False
    assert t.client.state is LifecycleState.IDLE
    assert t.statuses == [SessionStatus.CAPTURE_ERROR]


def test_unexpected_capture_stop_exception_is_a_capture_error(unused_url) -> None:
    async def scenario():
        t = make_client(unused_url, FakeCapture(UTTERANCE, stop_error=ValueError("stream gone")))
        await t.client.begin()
        result = await t.client.end()
        restarted = await t.client.begin()
        return t, result, restarted

    t, result, restarted = asyncio.run(scenario())

    assert result.status is SessionStatus.CAPTURE_ERROR
    assert result.attempt_id is None
    assert restarted is True
    assert t.statuses[:2] == [SessionStatus.RECORDING, SessionStatus.CAPTURE_ERROR]


def test_abort_while_connecting_is_not_a_connection_error() -> None:
    async def scenario():
        async with stalled_server() as server:
            t = make_client(server.url, FakeCapture(UTTERANCE))
            await t.client.begin()
            pending = asyncio.create_task(t.client.end())
            await wait_for(lambda: server.connections == 1)
            state_at_abort = t.client.state
            aborted = await t.client.abort()
            result = await pending
            return t, state_at_abort, aborted, result

    t, state_at_abort, aborted, result = asyncio.run(scenario())

    assert state_at_abort is LifecycleState.SENDING
    assert aborted is True
    assert result.status is SessionStatus.ABORTED
    assert t.client.state is LifecycleState.IDLE
    assert t.client.session is None
    assert SessionStatus.CONNECTION_ERROR not in t.statuses
    assert SessionStatus.AWAITING_REPLY not in t.statuses


def test_abort_recovers_session_whose_task_already_finished() -> None:
    async def scenario():
        t = make_client("ws://127.0.0.1:9/ws", FakeCapture(UTTERANCE))
        for state in (LifecycleState.RECORDING, LifecycleState.SENDING, LifecycleState.AWAITING_REPLY):
            t.client._set_state(state)
        finished = asyncio.create_task(asyncio.sleep(0))
        await finished
        t.client.session = Session(attempt_id=7, utterance=None, task=finished)
        aborted = await t.client.abort()
        return t, aborted

    t, aborted = asyncio.run(scenario())

    assert aborted is True
    assert t.client.state is LifecycleState.IDLE
    assert t.client.session is None
    assert t.statuses == [SessionStatus.ABORTED]
