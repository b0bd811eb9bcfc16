"""Tests for the change-detection decision."""

import os
import shutil

import pytest

from diffgate import hashing
from diffgate.core import Snapshot
from diffgate.detector import ChangeDetector
from diffgate.errors import FileDigestError, SnapshotWriteError, VcsError
from diffgate.hashing import compute_file_digest
from diffgate.matching import IgnoreSpec
from diffgate.state import FileSnapshotStore, MemorySnapshotStore


class FailingScanner:
    def changed_paths(self, root):
        raise VcsError("git status failed")


class ReadOnlyStore(MemorySnapshotStore):
    def save(self, root, snapshot):
        raise SnapshotWriteError(root, "read-only file system")


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def detector_for(store, fake_scanner):
    """Build a detector over a fixed diff."""
    def _make(*diff_paths, **kwargs):
        return ChangeDetector(store=store, scanner=fake_scanner(diff_paths), **kwargs)
    return _make


class TestBootstrap:
    """The first run only records a baseline."""

    def test_first_run_never_reports_change(self, tmp_path, write_file, store, detector_for):
        write_file("src/a.txt", "hello")
        write_file("src/b.txt", "world")

        decision = detector_for("src/a.txt", "src/b.txt").evaluate(tmp_path, "src/**/*.txt")

        assert decision.bootstrap is True
        assert decision.changed is False
        assert decision.candidates == ["src/a.txt", "src/b.txt"]

        snapshot, existed = store.load(tmp_path)
        assert existed is True
        assert snapshot.files == {
            "src/a.txt": compute_file_digest(tmp_path / "src" / "a.txt"),
            "src/b.txt": compute_file_digest(tmp_path / "src" / "b.txt"),
        }

    def test_first_run_without_matches_saves_empty_baseline(self, tmp_path, store, detector_for):
        decision = detector_for().evaluate(tmp_path, "src/**/*.txt")

        assert decision.bootstrap is True
        assert decision.changed is False
        snapshot, existed = store.load(tmp_path)
        assert existed is True
        assert snapshot.files == {}

    def test_malformed_snapshot_forces_bootstrap(self, tmp_path, write_file, fake_scanner):
        write_file("a.txt", "a")
        (tmp_path / ".diffgate").mkdir()
        (tmp_path / ".diffgate" / "snapshot.json").write_text("{broken")

        detector = ChangeDetector(store=FileSnapshotStore(), scanner=fake_scanner(["a.txt"]))
        decision = detector.evaluate(tmp_path, "*.txt")

        assert decision.bootstrap is True
        assert decision.changed is False
        assert FileSnapshotStore().load(tmp_path)[1] is True


class TestChangeDecision:
    """Runs after the baseline compare against the stored digests."""

    def test_second_run_without_modification(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "hello")
        detector = detector_for("src/a.txt")

        detector.evaluate(tmp_path, "src/**/*.txt")
        decision = detector.evaluate(tmp_path, "src/**/*.txt")

        assert decision.bootstrap is False
        assert decision.changed is False
        assert decision.candidates == ["src/a.txt"]
        assert decision.changed_paths == []

    def test_content_change_detected(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "hello")
        detector = detector_for("src/a.txt")
        detector.evaluate(tmp_path, "src/**/*.txt")

        write_file("src/a.txt", "hello, again")
        decision = detector.evaluate(tmp_path, "src/**/*.txt")

        assert decision.changed is True
        assert decision.changed_paths == ["src/a.txt"]

    def test_change_reported_once(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "v1")
        detector = detector_for("src/a.txt")
        detector.evaluate(tmp_path, "src/**/*.txt")
        write_file("src/a.txt", "v2")

        assert detector.evaluate(tmp_path, "src/**/*.txt").changed is True
        assert detector.evaluate(tmp_path, "src/**/*.txt").changed is False

    def test_touch_without_content_change(self, tmp_path, write_file, detector_for):
        write_file("a.txt", "same")
        detector = detector_for("a.txt")
        detector.evaluate(tmp_path, "*.txt")

        write_file("a.txt", "same")
        assert detector.evaluate(tmp_path, "*.txt").changed is False

    def test_non_matching_file_ignored(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "hello")
        write_file("src/main.py", "print(1)")
        detector = detector_for("src/a.txt", "src/main.py")
        detector.evaluate(tmp_path, "src/**/*.txt")

        write_file("src/main.py", "print(2)")
        decision = detector.evaluate(tmp_path, "src/**/*.txt")

        assert decision.changed is False
        assert decision.candidates == ["src/a.txt"]

    def test_file_outside_diff_ignored(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "hello")
        write_file("src/committed.txt", "clean")
        detector = detector_for("src/a.txt")
        detector.evaluate(tmp_path, "src/**/*.txt")

        write_file("src/committed.txt", "edited but not in the diff")
        assert detector.evaluate(tmp_path, "src/**/*.txt").changed is False

    def test_new_file_after_baseline_is_a_change(self, tmp_path, write_file, store, fake_scanner):
        """A digest appearing where none was stored counts as a change."""
        ChangeDetector(store=store, scanner=fake_scanner()).evaluate(tmp_path, "src/**/*.txt")

        write_file("src/a.txt", "hello")
        decision = ChangeDetector(store=store, scanner=fake_scanner(["src/a.txt"])).evaluate(
            tmp_path, "src/**/*.txt"
        )

        assert decision.changed is True
        assert decision.changed_paths == ["src/a.txt"]

    def test_ignored_paths_never_candidates(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "hello")
        write_file("src/out.generated.txt", "gen 1")
        detector = detector_for(
            "src/a.txt", "src/out.generated.txt", ignore=IgnoreSpec(["*.generated.txt"])
        )
        detector.evaluate(tmp_path, "src/**/*.txt")

        write_file("src/out.generated.txt", "gen 2")
        decision = detector.evaluate(tmp_path, "src/**/*.txt")

        assert decision.changed is False
        assert decision.candidates == ["src/a.txt"]

    def test_single_star_selects_one_directory_level(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "top")
        write_file("src/deep/b.txt", "nested")
        detector = detector_for("src/a.txt", "src/deep/b.txt")

        assert detector.evaluate(tmp_path, "src/*").candidates == ["src/a.txt"]
        assert detector.evaluate(tmp_path, "*").candidates == []

    def test_undecodable_name_never_candidate(self, tmp_path, write_file, store, detector_for):
        write_file("a.txt", "ok")
        detector = detector_for("a.txt", "bad\udcff.txt")

        detector.evaluate(tmp_path, "*.txt")
        decision = detector.evaluate(tmp_path, "*.txt")

        assert decision.candidates == ["a.txt"]
        assert list(store.load(tmp_path)[0].files) == ["a.txt"]

    def test_state_directory_never_candidate(self, tmp_path, write_file, detector_for):
        write_file(".diffgate/notes.txt", "internal")
        decision = detector_for(".diffgate/notes.txt").evaluate(tmp_path, "**/*.txt")
        assert decision.candidates == []

    def test_serial_and_parallel_hashing_agree(self, tmp_path, write_file, fake_scanner):
        paths = [f"src/f{i}.txt" for i in range(12)]
        for i, path in enumerate(paths):
            write_file(path, f"content {i}")

        serial = MemorySnapshotStore()
        parallel = MemorySnapshotStore()
        ChangeDetector(store=serial, scanner=fake_scanner(paths), hash_workers=1).evaluate(tmp_path, "src/*.txt")
        ChangeDetector(store=parallel, scanner=fake_scanner(paths), hash_workers=8).evaluate(tmp_path, "src/*.txt")

        assert serial.load(tmp_path)[0].files == parallel.load(tmp_path)[0].files


class TestHistory:
    """The snapshot is shared across patterns and survives deletions."""

    def test_pattern_switch_does_not_fire(self, tmp_path, write_file, store, detector_for):
        write_file("src/a.txt", "edited")
        write_file("docs/guide.md", "unchanged")
        detector = detector_for("src/a.txt")

        detector.evaluate(tmp_path, "src/**/*.txt")
        decision = detector.evaluate(tmp_path, "docs/**/*.md")

        assert decision.changed is False
        # Entries recorded under the first pattern are carried over
        assert "src/a.txt" in store.load(tmp_path)[0].files

    def test_entries_outside_candidates_carried_over(self, tmp_path, write_file, store, detector_for):
        old = "sha256:" + "c" * 64
        store.save(tmp_path, Snapshot(files={"lib/old.py": old}))
        write_file("src/a.txt", "hello")

        detector_for("src/a.txt").evaluate(tmp_path, "src/**/*.txt")

        files = store.load(tmp_path)[0].files
        assert files["lib/old.py"] == old
        assert "src/a.txt" in files

    def test_snapshot_written_under_other_pattern_is_reused(self, tmp_path, write_file, detector_for):
        write_file("src/a.txt", "hello")
        detector = detector_for("src/a.txt")

        detector.evaluate(tmp_path, "**/*")
        decision = detector.evaluate(tmp_path, "src/*.txt")

        assert decision.changed is False

    def test_deleted_file_dropped_without_change(self, tmp_path, write_file, store, detector_for):
        write_file("src/a.txt", "hello")
        write_file("src/b.txt", "bye")
        detector = detector_for("src/a.txt", "src/b.txt")
        detector.evaluate(tmp_path, "src/**/*.txt")

        (tmp_path / "src" / "b.txt").unlink()
        decision = detector.evaluate(tmp_path, "src/**/*.txt")

        assert decision.changed is False
        assert decision.candidates == ["src/a.txt"]
        assert "src/b.txt" not in store.load(tmp_path)[0].files

    def test_recreated_file_counts_as_change(self, tmp_path, write_file, detector_for):
        write_file("a.txt", "hello")
        detector = detector_for("a.txt")
        detector.evaluate(tmp_path, "*.txt")
        (tmp_path / "a.txt").unlink()
        detector.evaluate(tmp_path, "*.txt")

        write_file("a.txt", "hello")
        assert detector.evaluate(tmp_path, "*.txt").changed is True

    def test_unreadable_candidate_treated_as_deleted(self, tmp_path, write_file, store, detector_for, monkeypatch):
        write_file("a.txt", "a1")
        write_file("b.txt", "b1")
        detector = detector_for("a.txt", "b.txt")
        detector.evaluate(tmp_path, "*.txt")

        write_file("b.txt", "b2")
        real = hashing.compute_file_digest

        def flaky(path):
            if path.name == "b.txt":
                raise FileDigestError(path, "vanished")
            return real(path)

        monkeypatch.setattr(hashing, "compute_file_digest", flaky)
        decision = detector.evaluate(tmp_path, "*.txt")

        assert decision.changed is False
        assert decision.candidates == ["a.txt"]
        assert "b.txt" not in store.load(tmp_path)[0].files


class TestFailures:
    """Environment failures abort the evaluation."""

    def test_vcs_error_propagates(self, tmp_path, store):
        detector = ChangeDetector(store=store, scanner=FailingScanner())

        with pytest.raises(VcsError):
            detector.evaluate(tmp_path, "**/*.txt")
        assert store.load(tmp_path)[1] is False

    def test_save_error_propagates(self, tmp_path, write_file, fake_scanner):
        write_file("a.txt", "a")
        detector = ChangeDetector(store=ReadOnlyStore(), scanner=fake_scanner(["a.txt"]))

        with pytest.raises(SnapshotWriteError):
            detector.evaluate(tmp_path, "*.txt")


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestWithGit:
    """End-to-end decisions against a real working copy."""

    def test_staged_file_after_empty_baseline(self, git_repo, run_git):
        detector = ChangeDetector(store=FileSnapshotStore())

        first = detector.evaluate(git_repo, "src/**/*.txt")
        assert first.bootstrap is True
        baseline, existed = FileSnapshotStore().load(git_repo)
        assert existed is True
        assert baseline.files == {}

        (git_repo / "src" / "a.txt").write_text("hello")
        run_git(git_repo, "add", "src/a.txt")
        second = detector.evaluate(git_repo, "src/**/*.txt")

        assert second.changed is True
        assert second.changed_paths == ["src/a.txt"]

    def test_modified_tracked_file(self, git_repo):
        detector = ChangeDetector(store=FileSnapshotStore())
        (git_repo / "src" / "notes.txt").write_text("draft 1\n")
        detector.evaluate(git_repo, "src/**/*.txt")

        assert detector.evaluate(git_repo, "src/**/*.txt").changed is False

        (git_repo / "src" / "notes.txt").write_text("draft 2\n")
        assert detector.evaluate(git_repo, "src/**/*.txt").changed is True

    def test_snapshot_does_not_enter_diff(self, git_repo):
        detector = ChangeDetector(store=FileSnapshotStore())
        detector.evaluate(git_repo, "**/*")

        decision = detector.evaluate(git_repo, "**/*")
        assert decision.candidates == []

    def test_non_utf8_file_name_skipped(self, git_repo, run_git):
        try:
            with open(os.fsencode(git_repo) + b"/bad\xff.txt", "wb") as f:
                f.write(b"bytes\n")
        except OSError:
            pytest.skip("file system rejects non-UTF-8 names")
        (git_repo / "src" / "notes.txt").write_text("edited\n")
        run_git(git_repo, "add", "-A")
        detector = ChangeDetector(store=FileSnapshotStore())

        detector.evaluate(git_repo, "**/*.txt")
        decision = detector.evaluate(git_repo, "**/*.txt")

        assert decision.changed is False
        assert decision.candidates == ["src/notes.txt"]
        assert list(FileSnapshotStore().load(git_repo)[0].files) == ["src/notes.txt"]
