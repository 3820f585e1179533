"""Tests for the session state machine."""

import pytest

from clustersim.engine.session import SessionStateMachine, SessionStatus
from clustersim.errors import IllegalTransition


class TestSessionStateMachine:
    """Test SessionStateMachine."""

    @pytest.fixture
    def session(self):
        return SessionStateMachine()

    def test_initial_state(self, session):
        """Test sessions start idle."""
        assert session.status == SessionStatus.IDLE
        assert not session.is_running

    def test_start_pause(self, session):
        """Test idle <-> running."""
        session.start()
        assert session.is_running

        session.pause()
        assert session.status == SessionStatus.IDLE

    def test_toggle(self, session):
        """Test toggling flips running."""
        session.toggle()
        assert session.is_running

        session.toggle()
        assert not session.is_running

    def test_terminate_from_running(self, session):
        """Test ceiling breach ends the session."""
        session.start()
        session.terminate()

        assert session.is_terminated
        assert not session.is_running

    def test_terminate_requires_running(self, session):
        """Test terminate from idle is illegal."""
        with pytest.raises(IllegalTransition):
            session.terminate()

    def test_terminated_is_absorbing(self, session):
        """Test start/pause are rejected once terminated."""
        session.start()
        session.terminate()

        with pytest.raises(IllegalTransition):
            session.start()
        with pytest.raises(IllegalTransition):
            session.pause()
        with pytest.raises(IllegalTransition):
            session.require_mutable("add node")

    def test_retry(self, session):
        """Test retry leaves terminated."""
        session.start()
        session.terminate()

        session.retry()

        assert session.status == SessionStatus.IDLE

    def test_retry_requires_terminated(self, session):
        """Test retry from idle is illegal."""
        with pytest.raises(IllegalTransition):
            session.retry()

    @pytest.mark.parametrize("terminate", [True, False])
    def test_reset_from_any_state(self, session, terminate):
        """Test reset always returns to idle."""
        session.start()
        if terminate:
            session.terminate()

        session.reset()

        assert session.status == SessionStatus.IDLE
