"""
Tests for InjectionSession state and latches.
"""

import asyncio

import pytest

from teardown_harness.errors import InvalidSessionTransition, TracerExitError
from teardown_harness.tracer.session import InjectionSession, Latch, SessionState


def make_session(tail_lines: int = 200) -> InjectionSession:
    return InjectionSession(pid=4242, syscall="umount2", delay_s=12, tail_lines=tail_lines)


class TestLatch:
    @pytest.mark.asyncio
    async def test_waiter_before_fire_sees_it(self) -> None:
        latch = Latch("armed")
        waiter = asyncio.create_task(latch.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        latch.fire()
        await asyncio.wait_for(waiter, 1)
        assert latch.is_set
        assert latch.fired_at is not None

    @pytest.mark.asyncio
    async def test_waiter_after_fire_returns(self) -> None:
        latch = Latch("armed")
        latch.fire()
        await asyncio.wait_for(latch.wait(), 1)

    def test_fires_once(self) -> None:
        latch = Latch("completed")
        latch.fire()
        with pytest.raises(InvalidSessionTransition, match="completed"):
            latch.fire()


class TestTransitions:
    def test_happy_path(self) -> None:
        session = make_session()
        assert session.state == SessionState.SPAWNED
        session.mark_armed()
        assert session.state == SessionState.ARMED
        assert session.is_armed
        session.mark_completed(0)
        assert session.state == SessionState.COMPLETED
        assert session.is_completed
        assert session.returncode == 0

    def test_spawned_to_completed(self) -> None:
        session = make_session()
        session.mark_completed(1)
        assert session.state == SessionState.COMPLETED
        assert not session.is_armed

    def test_completed_is_terminal(self) -> None:
        session = make_session()
        session.mark_armed()
        session.mark_completed(0)
        with pytest.raises(InvalidSessionTransition):
            session.mark_armed()
        with pytest.raises(InvalidSessionTransition):
            session.mark_completed(0)

    def test_armed_only_once(self) -> None:
        session = make_session()
        session.mark_armed()
        with pytest.raises(InvalidSessionTransition):
            session.mark_armed()

    def test_may_proceed(self) -> None:
        assert SessionState.SPAWNED.may_proceed
        assert SessionState.ARMED.may_proceed
        assert not SessionState.COMPLETED.may_proceed


class TestOutput:
    def test_feed_splits_lines(self) -> None:
        session = make_session()
        assert session.feed(b"strace: Process 4242 att") == []
        assert session.feed(b"ached\numount2(") == ["strace: Process 4242 attached"]
        assert session.flush() == ["umount2("]
        assert session.diagnostics == ["strace: Process 4242 attached", "umount2("]
        assert session.bytes_seen == len(b"strace: Process 4242 attached\numount2(")

    def test_flush_without_partial(self) -> None:
        session = make_session()
        session.feed(b"line\n")
        assert session.flush() == []

    def test_tail_is_bounded(self) -> None:
        session = make_session(tail_lines=3)
        session.feed(b"".join(f"line {i}\n".encode() for i in range(10)))
        assert session.diagnostics == ["line 7", "line 8", "line 9"]

    def test_crlf(self) -> None:
        session = make_session()
        assert session.feed(b"a\r\n") == ["a"]


class TestCompletion:
    @pytest.mark.asyncio
    async def test_wait_completed_timeout(self) -> None:
        session = make_session()
        with pytest.raises(TimeoutError):
            await session.wait_completed(0.05)

    @pytest.mark.asyncio
    async def test_wait_completed_returns_status(self) -> None:
        session = make_session()
        session.mark_armed()
        asyncio.get_running_loop().call_later(0.01, session.mark_completed, 0)
        assert await session.wait_completed(1) == 0

    def test_raise_for_exit_nonzero(self) -> None:
        session = make_session()
        session.feed(b"strace: attach: ptrace(PTRACE_SEIZE, 4242): Operation not permitted\n")
        session.mark_completed(1)
        with pytest.raises(TracerExitError) as exc_info:
            session.raise_for_exit()
        assert exc_info.value.returncode == 1
        assert "Operation not permitted" in exc_info.value.context["diagnostics"][0]

    def test_raise_for_exit_zero(self) -> None:
        session = make_session()
        session.mark_completed(0)
        session.raise_for_exit()

    @pytest.mark.asyncio
    async def test_aclose_without_process(self) -> None:
        session = make_session()
        await session.aclose()
        assert session.tracer_pid is None

    def test_summary(self) -> None:
        session = make_session()
        session.mark_armed()
        summary = session.to_summary()
        assert summary["state"] == "ARMED"
        assert summary["pid"] == 4242
        assert summary["syscall"] == "umount2"
