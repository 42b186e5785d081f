"""Tests for capture session state transitions."""

from __future__ import annotations

from pathlib import Path

from linklens.session.models import (
    CaptureSession,
    SessionState,
    TerminationReason,
)


def _make_session(tmp_path: Path) -> CaptureSession:
    return CaptureSession(
        target="example.com",
        interface="any",
        duration=10,
        capture_file=tmp_path / "capture.pcapng",
    )


def test_forward_transitions(tmp_path):
    session = _make_session(tmp_path)
    assert session.state == SessionState.STARTING
    assert session.transition(SessionState.RUNNING)
    assert session.ended_at is None
    assert session.transition(SessionState.COMPLETED)
    assert session.ended_at is not None


def test_terminal_states_are_final(tmp_path):
    session = _make_session(tmp_path)
    session.transition(SessionState.STOPPED)
    ended = session.ended_at

    assert not session.transition(SessionState.RUNNING)
    assert not session.transition(SessionState.ERRORED)
    assert session.state == SessionState.STOPPED
    assert session.ended_at == ended


def test_cannot_go_back_to_starting(tmp_path):
    session = _make_session(tmp_path)
    session.transition(SessionState.RUNNING)
    assert not session.transition(SessionState.STARTING)
    assert session.state == SessionState.RUNNING


def test_packet_count_never_decreases(tmp_path):
    session = _make_session(tmp_path)
    session.add_packets(3)
    session.add_packets(-5)
    session.add_packets(0)
    assert session.packet_count == 3


def test_termination_reason_maps_to_state():
    assert TerminationReason.NORMAL.final_state == SessionState.COMPLETED
    assert TerminationReason.KILLED_BY_REQUEST.final_state == SessionState.STOPPED
    assert TerminationReason.PROCESS_ERROR.final_state == SessionState.ERRORED
    assert TerminationReason.SIGNALED.final_state == SessionState.ERRORED


def test_to_dict_without_capture_file(tmp_path):
    session = _make_session(tmp_path)
    body = session.to_dict()
    assert body["sessionId"] == session.id
    assert body["state"] == "starting"
    assert body["fileSize"] == 0
    assert "error" not in body


def test_to_dict_reports_file_size_and_error(tmp_path):
    session = _make_session(tmp_path)
    session.capture_file.write_bytes(b"\x00" * 24)
    session.transition(SessionState.ERRORED)
    session.termination_reason = TerminationReason.PROCESS_ERROR
    session.last_error = "permission denied"

    body = session.to_dict()
    assert body["fileSize"] == 24
    assert body["reason"] == "processError"
    assert body["error"] == "permission denied"


def test_owner_is_weak(tmp_path):
    import weakref

    class Owner:
        pass

    owner = Owner()
    session = _make_session(tmp_path)
    session.owner = weakref.ref(owner)
    assert session.owned_by(owner)
    assert not session.owned_by(Owner())

    del owner
    assert session.owner() is None
