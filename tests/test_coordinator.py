"""Tests for the rotation coordinator."""

import os
import threading
import time
from datetime import datetime
from unittest import mock

import pytest

from rotating_log.archive import ArchiveNamer
from rotating_log.coordinator import RotationCoordinator, RotationOutcome, RotationPhase
from rotating_log.lock import RotationLock
from rotating_log.policy import Granularity, SizeRule, TimeRule
from rotating_log.sink import FileSink
from rotating_log.tracker import FileStateTracker, RotationState


def _no_sleep(_seconds):
    pass


class Actor:
    """One writer of the log: its own stream, state and coordinator."""

    def __init__(self, path, rule, time_func, max_files=None, lock_retries=0, sleep=_no_sleep):
        self.sink = FileSink(path)
        self.tracker = FileStateTracker(self.sink, rule, RotationState(), time_func=time_func)
        self.namer = ArchiveNamer(rule, path, max_files=max_files)
        self.lock = RotationLock(path + ".rotate", retries=lock_retries, sleep=sleep)
        self.coordinator = RotationCoordinator(self.sink, rule, self.tracker, self.namer, self.lock)
        if isinstance(rule, TimeRule):
            self.tracker.advance_schedule()

    def close(self):
        self.sink.close()


def _read(path):
    with open(path) as f:
        return f.read()


@pytest.fixture
def fake_time():
    return [datetime(2024, 6, 12, 23, 59, 0)]


@pytest.fixture
def log_path(tmp_path):
    return str(tmp_path / "app.log")


@pytest.fixture
def size_rule(log_path):
    return SizeRule(max_bytes=10, name_pattern=log_path + ".%i")


@pytest.fixture
def daily_rule(log_path):
    return TimeRule(rate=Granularity.DAILY, name_pattern=log_path + "-%d")


class TestSizeRotation:
    def test_not_due(self, log_path, size_rule, fake_time):
        actor = Actor(log_path, size_rule, lambda: fake_time[0])
        actor.sink.write("short\n")
        assert actor.coordinator.maybe_rotate() is RotationOutcome.NOT_DUE
        assert not os.path.exists(log_path + ".1")
        actor.close()

    def test_rotates_when_over_threshold(self, log_path, size_rule, fake_time):
        actor = Actor(log_path, size_rule, lambda: fake_time[0], max_files=3)
        actor.sink.write("0123456789ab\n")

        assert actor.coordinator.maybe_rotate() is RotationOutcome.ROTATED

        assert _read(log_path + ".1") == "0123456789ab\n"
        assert os.path.getsize(log_path) == 0
        assert not os.path.exists(log_path + ".rotate")
        assert not os.path.exists(log_path + ".tmp")
        actor.sink.write("fresh\n")
        assert _read(log_path) == "fresh\n"
        assert actor.tracker.state.rotation_in_progress is False
        actor.close()

    def test_phases(self, log_path, size_rule, fake_time):
        actor = Actor(log_path, size_rule, lambda: fake_time[0])
        actor.sink.write("0123456789ab\n")
        phases = []
        original = actor.coordinator._enter
        actor.coordinator._enter = lambda phase: (phases.append(phase), original(phase))

        actor.coordinator.maybe_rotate()

        assert phases == [
            RotationPhase.ACQUIRING_LOCK,
            RotationPhase.LOCKED,
            RotationPhase.VERIFYING,
            RotationPhase.RENAMING,
            RotationPhase.REOPENED,
            RotationPhase.PRUNED,
            RotationPhase.IDLE,
        ]
        assert actor.coordinator.phase is RotationPhase.IDLE
        actor.close()

    def test_size_dropped_under_lock_counts_as_already_rotated(self, log_path, size_rule, fake_time):
        actor = Actor(log_path, size_rule, lambda: fake_time[0])
        actor.sink.write("tiny\n")
        assert actor.coordinator.rotate() is RotationOutcome.ALREADY_ROTATED
        assert not os.path.exists(log_path + ".1")
        assert not os.path.exists(log_path + ".rotate")
        actor.close()

    def test_busy_while_rotation_in_progress(self, log_path, size_rule, fake_time):
        actor = Actor(log_path, size_rule, lambda: fake_time[0])
        actor.sink.write("0123456789ab\n")
        actor.tracker.state.rotation_in_progress = True
        with mock.patch.object(actor.tracker, "snapshot") as snapshot:
            assert actor.coordinator.maybe_rotate() is RotationOutcome.BUSY
        # The live file is not inspected while another rotation owns the state.
        snapshot.assert_not_called()
        assert not os.path.exists(log_path + ".1")
        actor.close()

    def test_rename_failure_is_contained(self, log_path, size_rule, fake_time):
        actor = Actor(log_path, size_rule, lambda: fake_time[0])
        actor.sink.write("0123456789ab\n")
        with mock.patch("rotating_log.coordinator.os.rename", side_effect=PermissionError("denied")):
            assert actor.coordinator.maybe_rotate() is RotationOutcome.FAILED
        assert not os.path.exists(log_path + ".rotate")
        assert actor.coordinator.phase is RotationPhase.IDLE
        actor.sink.write("still writing\n")
        assert _read(log_path).endswith("still writing\n")
        actor.close()

    def test_two_actors_only_one_renames(self, log_path, size_rule, fake_time):
        first = Actor(log_path, size_rule, lambda: fake_time[0])
        second = Actor(log_path, size_rule, lambda: fake_time[0])
        first.sink.write("0123456789ab\n")

        assert first.coordinator.maybe_rotate() is RotationOutcome.ROTATED
        assert second.coordinator.rotate() is RotationOutcome.ALREADY_ROTATED

        assert sorted(os.listdir(os.path.dirname(log_path))) == ["app.log", "app.log.1"]
        second.sink.write("from second\n")
        assert _read(log_path) == "from second\n"
        first.close()
        second.close()


class TestLockFailure:
    def test_lock_held_elsewhere_skips_and_reopens(self, log_path, daily_rule, fake_time):
        actor = Actor(log_path, daily_rule, lambda: fake_time[0])
        actor.sink.write("late record\n")
        open(log_path + ".rotate", "w").close()
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 1)

        with mock.patch.object(actor.sink, "reopen", wraps=actor.sink.reopen) as reopen:
            outcome = actor.coordinator.maybe_rotate()

        assert outcome is RotationOutcome.LOCK_FAILED
        reopen.assert_called_once()
        assert actor.tracker.state.rotate_at == datetime(2024, 6, 14)
        assert actor.tracker.state.period_start == datetime(2024, 6, 13)
        assert not os.path.exists(log_path + "-20240612")
        # The other holder's marker is left alone.
        assert os.path.exists(log_path + ".rotate")
        assert actor.coordinator.phase is RotationPhase.IDLE
        actor.close()


class TestTimeRotation:
    def test_archive_named_for_period_start(self, log_path, daily_rule, fake_time):
        actor = Actor(log_path, daily_rule, lambda: fake_time[0])
        actor.sink.write("before midnight\n")
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 7)

        assert actor.coordinator.maybe_rotate() is RotationOutcome.ROTATED

        assert _read(log_path + "-20240612") == "before midnight\n"
        assert actor.tracker.state.rotate_at == datetime(2024, 6, 14)
        assert actor.tracker.state.period_start == datetime(2024, 6, 13)
        assert actor.coordinator.maybe_rotate() is RotationOutcome.NOT_DUE
        actor.close()

    def test_existing_archive_means_already_rotated(self, log_path, daily_rule, fake_time):
        actor = Actor(log_path, daily_rule, lambda: fake_time[0])
        actor.sink.write("record\n")
        with open(log_path + "-20240612", "w") as f:
            f.write("rotated elsewhere\n")
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 1)

        assert actor.coordinator.maybe_rotate() is RotationOutcome.ALREADY_ROTATED

        assert _read(log_path + "-20240612") == "rotated elsewhere\n"
        assert _read(log_path) == "record\n"
        assert actor.tracker.state.rotate_at == datetime(2024, 6, 14)
        actor.close()

    def test_retention_applies_after_rotation(self, log_path, daily_rule, fake_time):
        actor = Actor(log_path, daily_rule, lambda: fake_time[0], max_files=2)
        for day in (9, 10, 11):
            with open(f"{log_path}-202406{day:02d}", "w") as f:
                f.write(str(day))
        actor.sink.write("twelfth\n")
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 1)

        assert actor.coordinator.maybe_rotate() is RotationOutcome.ROTATED

        names = sorted(os.listdir(os.path.dirname(log_path)))
        assert names == ["app.log", "app.log-20240611", "app.log-20240612"]
        actor.close()

    def test_two_actors_same_boundary(self, log_path, daily_rule, fake_time):
        first = Actor(log_path, daily_rule, lambda: fake_time[0])
        second = Actor(log_path, daily_rule, lambda: fake_time[0])
        first.sink.write("a\n")
        second.sink.write("b\n")
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 1)

        assert first.coordinator.maybe_rotate() is RotationOutcome.ROTATED
        assert second.coordinator.maybe_rotate() is RotationOutcome.ALREADY_ROTATED

        assert _read(log_path + "-20240612") == "a\nb\n"
        second.sink.write("c\n")
        first.sink.write("d\n")
        assert _read(log_path) == "c\nd\n"
        first.close()
        second.close()

    def test_concurrent_actors_rename_once(self, log_path, daily_rule, fake_time):
        actors = [
            Actor(log_path, daily_rule, lambda: fake_time[0], lock_retries=200, sleep=time.sleep)
            for _ in range(2)
        ]
        for actor in actors:
            actor.sink.write("x\n")
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 1)

        barrier = threading.Barrier(len(actors))
        outcomes = []

        def run(actor):
            barrier.wait()
            outcomes.append(actor.coordinator.maybe_rotate())

        threads = [threading.Thread(target=run, args=(a,)) for a in actors]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert outcomes.count(RotationOutcome.ROTATED) == 1
        assert outcomes.count(RotationOutcome.FAILED) == 0
        archives = [n for n in os.listdir(os.path.dirname(log_path)) if n.startswith("app.log-")]
        assert archives == ["app.log-20240612"]
        assert not os.path.exists(log_path + ".rotate")
        for actor in actors:
            actor.close()

    def test_forced_rotation_before_boundary(self, log_path, daily_rule, fake_time):
        fake_time[0] = datetime(2024, 6, 12, 10, 0, 0)
        actor = Actor(log_path, daily_rule, lambda: fake_time[0], max_files=3)
        actor.sink.write("manual\n")
        assert actor.coordinator.maybe_rotate(force=True) is RotationOutcome.ROTATED
        assert _read(log_path + "-20240612") == "manual\n"
        assert actor.tracker.state.rotate_at == datetime(2024, 6, 13)
        assert actor.tracker.state.period_start == datetime(2024, 6, 12)

        outcomes = []
        for second in (1, 2, 3):
            fake_time[0] = datetime(2024, 6, 12, 10, 0, second)
            actor.sink.write("after\n")
            outcomes.append(actor.coordinator.maybe_rotate())

        assert outcomes == [RotationOutcome.NOT_DUE] * 3
        archives = [n for n in os.listdir(os.path.dirname(log_path)) if n.startswith("app.log-")]
        assert archives == ["app.log-20240612"]
        assert actor.tracker.state.rotate_at == datetime(2024, 6, 13)
        actor.close()

    def test_rename_failure_waits_for_next_period(self, log_path, daily_rule, fake_time):
        actor = Actor(log_path, daily_rule, lambda: fake_time[0])
        actor.sink.write("late record\n")
        fake_time[0] = datetime(2024, 6, 13, 0, 0, 1)

        outcomes = []
        with mock.patch("rotating_log.coordinator.os.rename", side_effect=PermissionError("denied")):
            for step in range(3):
                fake_time[0] = datetime(2024, 6, 13, 0, 0, 1, step * 60000)
                outcomes.append(actor.coordinator.maybe_rotate())

        assert outcomes == [RotationOutcome.FAILED, RotationOutcome.NOT_DUE, RotationOutcome.NOT_DUE]
        assert actor.tracker.state.rotate_at == datetime(2024, 6, 14)
        assert not os.path.exists(log_path + ".rotate")
        actor.sink.write("next\n")
        assert _read(log_path) == "late record\nnext\n"
        actor.close()
