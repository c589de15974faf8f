from pathlib import Path

from tsukimi_setup.services.common.state import SetupState, StateTracker


def test_marker_absent_means_not_complete(tmp_path: Path) -> None:
    tracker = StateTracker(tmp_path / ".tsukimi_setup_complete")

    assert tracker.is_complete() is False
    assert tracker.read() is None


def test_mark_complete_writes_marker(tmp_path: Path) -> None:
    marker = tmp_path / ".tsukimi_setup_complete"
    tracker = StateTracker(marker)

    assert tracker.mark_complete(note="first boot done") is True

    assert tracker.is_complete() is True
    state = tracker.read()
    assert state.completed is True
    assert state.note == "first boot done"
    assert state.timestamp
    assert marker.read_text(encoding="utf-8").startswith("completed: true\n")


def test_presence_alone_means_complete(tmp_path: Path) -> None:
    marker = tmp_path / ".tsukimi_setup_complete"
    marker.write_text("Setup completed at Mon Jan  1 00:00:00 JST 2024\n", encoding="utf-8")
    tracker = StateTracker(marker)

    assert tracker.is_complete() is True
    assert tracker.read() == SetupState(completed=True, timestamp="", note="")


def test_empty_marker_is_still_complete(tmp_path: Path) -> None:
    marker = tmp_path / ".tsukimi_setup_complete"
    marker.touch()

    assert StateTracker(marker).is_complete() is True


def test_mark_complete_replaces_previous_content(tmp_path: Path) -> None:
    marker = tmp_path / ".tsukimi_setup_complete"
    marker.write_text("stale content\nwith two lines\n", encoding="utf-8")
    tracker = StateTracker(marker)

    tracker.mark_complete(note="again")

    text = marker.read_text(encoding="utf-8")
    assert "stale content" not in text
    assert tracker.read().note == "again"
    assert [p.name for p in tmp_path.iterdir()] == [".tsukimi_setup_complete"]


def test_mark_complete_failure_leaves_no_marker(tmp_path: Path) -> None:
    blocked_home = tmp_path / "home-is-a-file"
    blocked_home.write_text("", encoding="utf-8")
    tracker = StateTracker(blocked_home / ".tsukimi_setup_complete")

    assert tracker.mark_complete() is False
    assert tracker.is_complete() is False
