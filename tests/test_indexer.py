"""
Tests for the descriptor indexer.

Covers add/replace/find/list/remove semantics, the documented duplicate and
empty-replace policies, crash safety of the index file and serialization of
concurrent mutations.
"""
from __future__ import annotations

import fcntl
import json
import threading

import pytest

from oci_layout.errors import Ambiguous, Cancelled, Conflict, IndexCorrupt, IOFailure, NotFound
from oci_layout.fsutil import TEMP_PREFIX
from oci_layout.indexer import Indexer
from oci_layout.matcher import EVERY, Annotation, Digest, Equal, RefName
from oci_layout.media_types import OCI_IMAGE_INDEX, OCI_REF_NAME_ANNOTATION
from tests.helpers.descriptors import make_descriptor


class TestCreation:
    """Test opening and creating index files."""

    def test_creates_empty_index(self, tmp_path):
        path = tmp_path / "index.json"
        Indexer(path, fsync=False)
        data = json.loads(path.read_text())
        assert data == {"schemaVersion": 2, "mediaType": OCI_IMAGE_INDEX, "manifests": []}

    def test_reopen_sees_persisted_state(self, tmp_path, indexer):
        a = make_descriptor("a")
        indexer.add(a)
        reopened = Indexer(tmp_path / "index.json", fsync=False)
        assert reopened.list() == [a]

    def test_corrupt_index_rejected(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text("{not json")
        with pytest.raises(IndexCorrupt):
            Indexer(path)

    def test_corrupt_index_is_io_failure(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"schemaVersion": 2, "manifests": [{"digest": "bad"}]}))
        with pytest.raises(IOFailure):
            Indexer(path)

    def test_foreign_fields_preserved(self, tmp_path):
        path = tmp_path / "index.json"
        existing = make_descriptor("a").to_dict()
        existing["platform"] = {"architecture": "arm64", "os": "linux"}
        path.write_text(json.dumps({
            "schemaVersion": 2,
            "manifests": [existing],
            "annotations": {"org.example": "kept"},
        }))
        indexer = Indexer(path, fsync=False)
        indexer.add(make_descriptor("b"))

        data = json.loads(path.read_text())
        assert data["annotations"] == {"org.example": "kept"}
        assert data["manifests"][0]["platform"] == {"architecture": "arm64", "os": "linux"}
        assert len(data["manifests"]) == 2


class TestAdd:
    """Test add() and the duplicate policy."""

    def test_add_preserves_insertion_order(self, indexer):
        descs = [make_descriptor(s) for s in ("c", "a", "b")]
        for d in descs:
            indexer.add(d)
        assert indexer.list() == descs
        assert indexer.list(EVERY) == indexer.list(EVERY)

    def test_duplicate_digest_conflicts(self, indexer):
        a = make_descriptor("a")
        indexer.add(a)
        relabeled = make_descriptor("a", annotations={"k": "v"})
        with pytest.raises(Conflict):
            indexer.add(relabeled)
        assert indexer.list() == [a]

    def test_identical_descriptor_conflicts(self, indexer):
        a = make_descriptor("a")
        indexer.add(a)
        with pytest.raises(Conflict):
            indexer.add(a)
        assert len(indexer.list()) == 1

    def test_cancelled_add_leaves_index_unchanged(self, indexer):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(Cancelled):
            indexer.add(make_descriptor("a"), cancel=cancel)
        assert indexer.list() == []


class TestFind:
    """Test find() cardinality rules."""

    def test_find_single(self, indexer):
        a, b = make_descriptor("a"), make_descriptor("b")
        indexer.add(a)
        indexer.add(b)
        assert indexer.find(Equal(b)) == b

    def test_find_none(self, indexer):
        with pytest.raises(NotFound):
            indexer.find(Equal(make_descriptor("a")))

    def test_find_ambiguous(self, indexer):
        indexer.add(make_descriptor("a", annotations={"team": "x"}))
        indexer.add(make_descriptor("b", annotations={"team": "x"}))
        with pytest.raises(Ambiguous):
            indexer.find(Annotation("team", "x"))

    def test_list_filters(self, indexer):
        a = make_descriptor("a", annotations={"team": "x"})
        b = make_descriptor("b")
        indexer.add(a)
        indexer.add(b)
        assert indexer.list(Annotation("team")) == [a]
        assert indexer.list(Digest("sha256:" + "0" * 64)) == []


class TestReplace:
    """Test replace() and the empty-match policy."""

    def test_replace_takes_position_of_first_match(self, indexer):
        a, b, c = (make_descriptor(s) for s in "abc")
        for d in (a, b, c):
            indexer.add(d)
        new = make_descriptor("new")
        removed = indexer.replace(new, Equal(b))
        assert removed == [b]
        assert indexer.list() == [a, new, c]

    def test_replace_removes_every_match(self, indexer):
        a = make_descriptor("a", annotations={"group": "old"})
        b = make_descriptor("b")
        c = make_descriptor("c", annotations={"group": "old"})
        for d in (a, b, c):
            indexer.add(d)
        new = make_descriptor("new")
        removed = indexer.replace(new, Annotation("group", "old"))
        assert removed == [a, c]
        assert indexer.list() == [new, b]

    def test_replace_without_match_appends(self, indexer):
        a = make_descriptor("a")
        indexer.add(a)
        new = make_descriptor("new")
        assert indexer.replace(new, Equal(make_descriptor("missing"))) == []
        assert indexer.list() == [a, new]

    def test_replace_with_itself(self, indexer):
        a = make_descriptor("a")
        indexer.add(a)
        relabeled = make_descriptor("a", annotations={"k": "v"})
        assert indexer.replace(relabeled, Equal(a)) == [a]
        assert indexer.list() == [relabeled]

    def test_replace_conflicting_digest(self, indexer):
        a, b = make_descriptor("a"), make_descriptor("b")
        indexer.add(a)
        indexer.add(b)
        with pytest.raises(Conflict):
            indexer.replace(b, Equal(a))
        assert indexer.list() == [a, b]

    def test_replaced_entry_not_found(self, indexer):
        a = make_descriptor("a")
        indexer.add(a)
        indexer.replace(make_descriptor("b"), Equal(a))
        with pytest.raises(NotFound):
            indexer.find(Equal(a))


class TestRemove:
    """Test remove()."""

    def test_remove(self, indexer):
        a, b = make_descriptor("a"), make_descriptor("b")
        indexer.add(a)
        indexer.add(b)
        assert indexer.remove(Equal(a)) == [a]
        assert indexer.list() == [b]

    def test_remove_nothing(self, indexer):
        with pytest.raises(NotFound):
            indexer.remove(EVERY)


class TestCrashSafety:
    """The index file is never left torn."""

    def test_persistence_failure_leaves_index_unchanged(self, tmp_path, indexer, monkeypatch):
        a = make_descriptor("a")
        indexer.add(a)
        before = (tmp_path / "index.json").read_bytes()

        def broken_write(path, data, *, fsync=True):
            raise OSError("simulated crash")

        monkeypatch.setattr("oci_layout.indexer.atomic_write_bytes", broken_write)
        with pytest.raises(IOFailure, match="simulated crash"):
            indexer.add(make_descriptor("b"))
        monkeypatch.undo()

        assert (tmp_path / "index.json").read_bytes() == before
        assert Indexer(tmp_path / "index.json", fsync=False).list() == [a]

    def test_failed_rename_keeps_previous_file(self, tmp_path, indexer, monkeypatch):
        a = make_descriptor("a")
        indexer.add(a)
        before = (tmp_path / "index.json").read_bytes()

        def broken_replace(src, dst):
            raise OSError("rename failed")

        monkeypatch.setattr("oci_layout.fsutil.os.replace", broken_replace)
        with pytest.raises(IOFailure):
            indexer.replace(make_descriptor("b"), Equal(a))
        monkeypatch.undo()

        assert (tmp_path / "index.json").read_bytes() == before
        assert not [p for p in tmp_path.iterdir() if p.name.startswith(TEMP_PREFIX)]

    def test_lock_timeout(self, tmp_path):
        path = tmp_path / "index.json"
        indexer = Indexer(path, lock_timeout_s=0.2, fsync=False)
        with open(tmp_path / "index.json.lock", "a+b") as held:
            fcntl.flock(held.fileno(), fcntl.LOCK_EX)
            try:
                with pytest.raises(IOFailure, match="Timed out"):
                    indexer.add(make_descriptor("a"))
            finally:
                fcntl.flock(held.fileno(), fcntl.LOCK_UN)
        assert indexer.list() == []


class TestConcurrency:
    """Concurrent mutations are serialized; readers see whole snapshots."""

    @pytest.mark.slow
    def test_concurrent_adds_are_not_lost(self, tmp_path):
        path = tmp_path / "index.json"
        Indexer(path, fsync=False)
        descs = [make_descriptor(f"image-{i}") for i in range(12)]
        errors = []

        def worker(desc):
            try:
                # separate instances contend on the file lock
                Indexer(path, lock_timeout_s=10.0, fsync=False).add(desc)
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(d,)) for d in descs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert sorted(d.digest for d in Indexer(path, fsync=False).list()) == sorted(d.digest for d in descs)

    @pytest.mark.slow
    def test_readers_never_observe_torn_replace(self, tmp_path):
        path = tmp_path / "index.json"
        writer = Indexer(path, fsync=False)
        current = make_descriptor("gen-0")
        writer.add(current)
        stop = threading.Event()
        observed = []

        def reader():
            ro = Indexer(path, fsync=False)
            while not stop.is_set():
                observed.append(len(ro.list()))

        readers = [threading.Thread(target=reader) for _ in range(3)]
        for t in readers:
            t.start()
        try:
            for gen in range(1, 40):
                nxt = make_descriptor(f"gen-{gen}")
                writer.replace(nxt, Equal(current))
                current = nxt
        finally:
            stop.set()
            for t in readers:
                t.join()

        assert observed
        assert set(observed) == {1}
        assert writer.list() == [current]

    @pytest.mark.slow
    def test_concurrent_replaces_keep_one_entry(self, tmp_path):
        path = tmp_path / "index.json"
        Indexer(path, fsync=False).add(make_descriptor("seed", annotations={OCI_REF_NAME_ANNOTATION: "latest"}))
        candidates = [
            make_descriptor(f"candidate-{i}", annotations={OCI_REF_NAME_ANNOTATION: "latest"})
            for i in range(16)
        ]
        errors = []

        def worker(desc):
            try:
                Indexer(path, lock_timeout_s=10.0, fsync=False).replace(desc, RefName("latest"))
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(d,)) for d in candidates]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        (winner,) = Indexer(path, fsync=False).list()
        assert winner in candidates
