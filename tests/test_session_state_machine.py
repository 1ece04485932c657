"""Tests for the verification session state machine."""

import pytest

from sealedreview.engine.session_state_machine import SessionTracker, advance, fail
from sealedreview.errors import IllegalTransition, VerificationInProgress
from sealedreview.models.session import SessionStatus, VerificationSession


class TestTransitions:
    def test_full_path(self) -> None:
        session = VerificationSession(record_id="review-1")
        for target in (
            SessionStatus.FETCHING_HANDLE,
            SessionStatus.PROVING_DECRYPTION,
            SessionStatus.SUBMITTING_PROOF,
            SessionStatus.CONFIRMED,
        ):
            advance(session, target)
        assert session.is_terminal

    def test_short_circuit_from_idle(self) -> None:
        session = VerificationSession(record_id="review-1")
        advance(session, SessionStatus.CONFIRMED)
        assert session.status == SessionStatus.CONFIRMED

    def test_race_confirmation_from_proving(self) -> None:
        session = VerificationSession(record_id="review-1")
        advance(session, SessionStatus.FETCHING_HANDLE)
        advance(session, SessionStatus.PROVING_DECRYPTION)
        advance(session, SessionStatus.CONFIRMED)
        assert session.status == SessionStatus.CONFIRMED

    @pytest.mark.parametrize("path", [
        [],
        [SessionStatus.FETCHING_HANDLE],
        [SessionStatus.FETCHING_HANDLE, SessionStatus.PROVING_DECRYPTION],
        [SessionStatus.FETCHING_HANDLE, SessionStatus.PROVING_DECRYPTION, SessionStatus.SUBMITTING_PROOF],
    ])
    def test_failed_reachable_from_every_non_terminal(self, path: list) -> None:
        session = VerificationSession(record_id="review-1")
        for target in path:
            advance(session, target)
        fail(session, "boom")
        assert session.status == SessionStatus.FAILED
        assert session.error == "boom"

    def test_skipping_a_step_is_illegal(self) -> None:
        session = VerificationSession(record_id="review-1")
        with pytest.raises(IllegalTransition):
            advance(session, SessionStatus.SUBMITTING_PROOF)
        assert session.status == SessionStatus.IDLE

    @pytest.mark.parametrize("terminal", [SessionStatus.CONFIRMED, SessionStatus.FAILED])
    def test_terminal_states_are_final(self, terminal: SessionStatus) -> None:
        session = VerificationSession(record_id="review-1")
        advance(session, terminal)
        with pytest.raises(IllegalTransition):
            advance(session, SessionStatus.FETCHING_HANDLE)


class TestSessionTracker:
    def test_second_open_rejected_while_active(self) -> None:
        tracker = SessionTracker()
        session = tracker.open("review-1")
        advance(session, SessionStatus.FETCHING_HANDLE)
        advance(session, SessionStatus.PROVING_DECRYPTION)
        with pytest.raises(VerificationInProgress):
            tracker.open("review-1")

    def test_reopen_after_terminal(self) -> None:
        tracker = SessionTracker()
        session = tracker.open("review-1")
        fail(session, "gateway down")
        again = tracker.open("review-1")
        assert again is not session
        assert again.status == SessionStatus.IDLE

    def test_release_only_drops_finished_sessions(self) -> None:
        tracker = SessionTracker()
        session = tracker.open("review-1")
        tracker.release(session)
        assert tracker.get("review-1") is session
        advance(session, SessionStatus.CONFIRMED)
        tracker.release(session)
        assert tracker.get("review-1") is None

    def test_active_lists_non_terminal(self) -> None:
        tracker = SessionTracker()
        tracker.open("review-1")
        done = tracker.open("review-2")
        advance(done, SessionStatus.CONFIRMED)
        assert [s.record_id for s in tracker.active()] == ["review-1"]
