"""Tests for the git synchronization state machine."""

import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import FakeGitRunner, fail, ok

from git_autosync.events import ChangeEvent, ChangeKind
from git_autosync.sync import (
    ChangedFile,
    DivergenceState,
    GitSyncEngine,
    build_commit_message,
    parse_ahead_behind,
    parse_status_output,
)


def make_engine(
    repo_dir: Path, runner: FakeGitRunner
) -> tuple[GitSyncEngine, MagicMock]:
    notifier = MagicMock()
    engine = GitSyncEngine("notes", repo_dir / ".git", runner, notifier)
    return engine, notifier


def forced() -> list[ChangeEvent]:
    return [ChangeEvent.forced()]


# Parsing


def test_parse_status_output_drops_ignored_entries() -> None:
    """Verifies that '!!' lines are excluded and paths start at column 3."""
    output = "M  foo.txt\n?? bar.txt\n!! ignored.txt\n"

    files = parse_status_output(output)

    assert files == [ChangedFile("M ", "foo.txt"), ChangedFile("??", "bar.txt")]
    assert build_commit_message(files) == "M foo.txt, ?? bar.txt"


def test_parse_status_output_handles_crlf_and_blank_lines() -> None:
    """Verifies that Windows line endings and empty lines are tolerated."""
    files = parse_status_output(" D gone.txt\r\n\r\nA  new dir/file.txt\r\n")

    assert files == [ChangedFile(" D", "gone.txt"), ChangedFile("A ", "new dir/file.txt")]


def test_parse_status_output_skips_malformed_lines(caplog: pytest.LogCaptureFixture) -> None:
    """Verifies that truncated lines are logged and skipped rather than fatal."""
    files = parse_status_output("M\n?? ok.txt\n")

    assert files == [ChangedFile("??", "ok.txt")]
    assert "Could not parse status line" in caplog.text


def test_parse_status_output_empty() -> None:
    assert parse_status_output("") == []
    assert parse_status_output("\n\n") == []


def test_build_commit_message_escapes_quotes_and_trims() -> None:
    """Verifies uppercasing of status, trimming of paths and quote escaping."""
    files = [ChangedFile("r ", ' "odd name".txt '), ChangedFile(" m", "a.txt")]

    assert build_commit_message(files) == 'R \\"odd name\\".txt, M a.txt'


def test_build_commit_message_empty_set() -> None:
    assert build_commit_message([]) == "Auto commit"


def test_parse_ahead_behind() -> None:
    """Verifies parsing of rev-list counts and degraded handling of bad output."""
    assert parse_ahead_behind("3\t2\n") == DivergenceState(True, 3, 2)
    assert parse_ahead_behind("0 0") == DivergenceState(True, 0, 0)
    assert parse_ahead_behind("3\n") == DivergenceState(False, 0, 0)
    assert parse_ahead_behind("") == DivergenceState.none()
    assert parse_ahead_behind("x 2") == DivergenceState.none()


def test_parse_ahead_behind_logs_warning(caplog: pytest.LogCaptureFixture) -> None:
    parse_ahead_behind("garbage")
    assert "Could not parse rev-list output: 'garbage'" in caplog.text


# Evaluate


def test_metadata_only_batch_is_noop(repo_dir: Path, fake_runner: FakeGitRunner) -> None:
    """Verifies that events inside .git never invoke git."""
    engine, notifier = make_engine(repo_dir, fake_runner)
    batch = [
        ChangeEvent(str(repo_dir / ".git" / "index"), ChangeKind.CHANGED),
        ChangeEvent(str(repo_dir / ".git" / "index.lock"), ChangeKind.DELETED),
        ChangeEvent(str(repo_dir / ".git" / "refs"), ChangeKind.CHANGED),
        ChangeEvent(str(repo_dir / ".git"), ChangeKind.CHANGED),
    ]

    outcome = engine.run(batch)

    assert fake_runner.calls == []
    assert outcome.processed is False
    notifier.notify.assert_not_called()


def test_empty_batch_is_noop(repo_dir: Path, fake_runner: FakeGitRunner) -> None:
    engine, _ = make_engine(repo_dir, fake_runner)

    outcome = engine.run([])

    assert fake_runner.calls == []
    assert outcome.aborted == "nothing to process"


def test_forced_check_always_processes(repo_dir: Path, fake_runner: FakeGitRunner) -> None:
    """Verifies that a forced check runs status and fetch even amid .git noise."""
    engine, _ = make_engine(repo_dir, fake_runner)
    batch = [
        ChangeEvent(str(repo_dir / ".git" / "index"), ChangeKind.CHANGED),
        ChangeEvent.forced(),
    ]

    engine.run(batch)

    assert ["status", "--porcelain"] in fake_runner.calls
    assert ["fetch", "--prune", "--all", "--force", "--verbose"] in fake_runner.calls


def test_deleted_working_tree_file_processes(
    repo_dir: Path, fake_runner: FakeGitRunner
) -> None:
    """Verifies that a missing path outside .git still counts as a change."""
    engine, _ = make_engine(repo_dir, fake_runner)

    outcome = engine.run([ChangeEvent(str(repo_dir / "gone.txt"), ChangeKind.DELETED)])

    assert outcome.processed is True
    assert fake_runner.verbs()[0] == "status"


def test_should_process_ignores_pathless_non_forced_events(repo_dir: Path) -> None:
    engine, _ = make_engine(repo_dir, FakeGitRunner())
    assert engine.should_process([ChangeEvent(None, ChangeKind.CHANGED)]) is False


# Pipeline


def test_no_upstream_commits_locally_only(repo_dir: Path) -> None:
    """Verifies that without an upstream the pass commits but never pulls or pushes."""
    runner = FakeGitRunner({"status": [ok("?? a.txt\n")], "rev-parse": [fail()]})
    engine, notifier = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert runner.verbs() == ["status", "fetch", "rev-parse", "add", "status", "commit"]
    assert outcome.created_commit is True
    assert outcome.commit_message == "?? a.txt"
    assert outcome.pushed is False
    notifier.notify.assert_not_called()


def test_probes_never_notify(repo_dir: Path) -> None:
    """Verifies that upstream and divergence probes suppress error notifications."""
    runner = FakeGitRunner({"rev-list": [fail()]})
    engine, _ = make_engine(repo_dir, runner)

    engine.run(forced())

    for call, flag in zip(runner.calls, runner.notify_flags):
        if call[0] in ("rev-parse", "rev-list"):
            assert flag is False
        else:
            assert flag is True


def test_commit_uses_post_stage_status(repo_dir: Path) -> None:
    """Verifies that the message is built from the status re-read after staging."""
    runner = FakeGitRunner(
        {
            "status": [ok("?? a.txt\n M b.txt\n"), ok("A  a.txt\nM  b.txt\n")],
            "rev-parse": [fail()],
        }
    )
    engine, _ = make_engine(repo_dir, runner)

    engine.run(forced())

    assert ["add", "--all"] in runner.calls
    assert ["commit", "-m", "A a.txt, M b.txt"] in runner.calls


def test_empty_post_stage_status_commits_auto_message(repo_dir: Path) -> None:
    """Verifies the 'Auto commit' fallback when staging leaves nothing listed."""
    runner = FakeGitRunner({"status": [ok(" M crlf.txt\n"), ok("")], "rev-parse": [fail()]})
    engine, _ = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert ["commit", "-m", "Auto commit"] in runner.calls
    assert outcome.commit_message == "Auto commit"


def test_clean_tree_skips_commit(repo_dir: Path) -> None:
    runner = FakeGitRunner({"rev-list": [ok("0\t0\n")]})
    engine, _ = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert "add" not in runner.verbs()
    assert "commit" not in runner.verbs()
    assert "push" not in runner.verbs()
    assert outcome.processed is True


def test_fetch_failure_does_not_abort(repo_dir: Path) -> None:
    """Verifies that fetch is best-effort and the pass continues."""
    runner = FakeGitRunner(
        {"status": [ok("M  a.txt\n")], "fetch": [fail()], "rev-list": [ok("0\t0")]}
    )
    engine, _ = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert "commit" in runner.verbs()
    assert "push" in runner.verbs()
    assert outcome.pushed is True


def test_failed_pull_prevents_push(repo_dir: Path) -> None:
    """Verifies that a failed rebase-pull aborts the pass before pushing."""
    runner = FakeGitRunner(
        {
            "status": [ok("M  a.txt\n")],
            "rev-list": [ok("1\t2\n")],
            "pull": [fail("CONFLICT", "could not apply")],
        }
    )
    engine, notifier = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert runner.verbs().count("push") == 0
    assert outcome.aborted == "pull failed"
    notifier.notify.assert_called_once_with(
        "GitAutoSync",
        "notes",
        "Pull/rebase failed (stdout: CONFLICT, stderr: could not apply)",
    )


def test_successful_pull_rechecks_divergence(repo_dir: Path) -> None:
    """Verifies that divergence is recomputed after a pull and drives the push."""
    runner = FakeGitRunner(
        {
            "rev-list": [ok("0\t3\n"), ok("0\t0\n")],
            "pull": [ok(" a.txt | 2 +-\n")],
        }
    )
    engine, notifier = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert runner.verbs() == [
        "status",
        "fetch",
        "rev-parse",
        "rev-list",
        "pull",
        "rev-parse",
        "rev-list",
    ]
    assert outcome.pulled is True
    assert outcome.pushed is False
    notifier.notify.assert_called_once_with(
        "GitAutoSync",
        "Synchronized (rebase) files from remote to local",
        " a.txt | 2 +-\n",
    )


def test_silent_pull_does_not_notify(repo_dir: Path) -> None:
    runner = FakeGitRunner({"rev-list": [ok("0\t1\n"), ok("0\t0\n")], "pull": [ok("")]})
    engine, notifier = make_engine(repo_dir, runner)

    engine.run(forced())

    notifier.notify.assert_not_called()


def test_push_when_ahead_without_new_commit(repo_dir: Path) -> None:
    """Verifies that unpushed commits are published even when nothing changed."""
    runner = FakeGitRunner({"rev-list": [ok("2\t0\n")]})
    engine, notifier = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert ["push", "--verbose"] in runner.calls
    assert outcome.created_commit is False
    assert outcome.pushed is True
    notifier.notify.assert_called_once_with(
        "GitAutoSync", "notes", "Synchronized (push) files from local to remote "
    )


def test_push_after_commit_includes_message(repo_dir: Path) -> None:
    runner = FakeGitRunner({"status": [ok("M  a.txt\n")], "rev-list": [ok("0\t0\n")]})
    engine, notifier = make_engine(repo_dir, runner)

    engine.run(forced())

    assert runner.verbs()[-1] == "push"
    notifier.notify.assert_called_once_with(
        "GitAutoSync", "notes", "Synchronized (push) files from local to remote M a.txt"
    )


def test_push_failure_notifies(repo_dir: Path) -> None:
    runner = FakeGitRunner(
        {"rev-list": [ok("1\t0\n")], "push": [fail("", "rejected")]}
    )
    engine, notifier = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert outcome.pushed is False
    notifier.notify.assert_called_once_with(
        "GitAutoSync", "notes", "Push failed (stdout: , stderr: rejected)"
    )


def test_failed_commit_without_ahead_skips_push(repo_dir: Path) -> None:
    """Verifies that a commit that failed (e.g. hook) does not warrant a push."""
    runner = FakeGitRunner(
        {"status": [ok("M  a.txt\n")], "commit": [fail()], "rev-list": [ok("0\t0\n")]}
    )
    engine, _ = make_engine(repo_dir, runner)

    outcome = engine.run(forced())

    assert outcome.created_commit is False
    assert "push" not in runner.verbs()


# Concurrency


def test_concurrent_passes_never_overlap(repo_dir: Path) -> None:
    """Verifies that passes triggered in close succession are serialized."""
    runner = FakeGitRunner({"status": [ok("M  a.txt\n")], "rev-list": [ok("0\t0\n")]}, delay=0.01)
    engine, _ = make_engine(repo_dir, runner)

    threads = [threading.Thread(target=engine.run, args=(forced(),)) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert runner.max_active == 1
    assert runner.verbs().count("push") == 3


def test_synchronize_drains_after_acquiring_mutex(repo_dir: Path) -> None:
    """Verifies that a waiting pass sees events queued while it was blocked."""
    runner = FakeGitRunner()
    engine, _ = make_engine(repo_dir, runner)
    drained: list[list[ChangeEvent]] = []

    def drain() -> list[ChangeEvent]:
        assert engine.busy
        drained.append(forced())
        return drained[-1]

    engine.synchronize(drain)

    assert len(drained) == 1
    assert not engine.busy
