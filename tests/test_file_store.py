"""Tests for the JSON file store."""

import fcntl
import json
import multiprocessing
import os

import pytest

from coverwatch.exceptions import PersistenceError, StoreTimeoutError
from coverwatch.models import TrackingPhase
from coverwatch.stores import FileStore

DOG = {
    "dog.py": {
        "data": [1, 2, None],
        "file_hash": "abcd",
        "first_updated_at": 1541968729,
        "last_updated_at": 1541968729,
    }
}


@pytest.fixture
def store_path(tmp_path):
    path = tmp_path / "coverage.json"
    path.write_text(json.dumps({"runtime": DOG}))
    return path


@pytest.fixture
def file_store(store_path, clock):
    return FileStore(str(store_path), clock=clock)


class TestReading:
    def test_coverage(self, file_store):
        assert file_store.coverage()["dog.py"].data[:2] == [1, 2]

    def test_unknown_file(self, file_store):
        assert "none.py" not in file_store.coverage()

    def test_covered_files(self, file_store):
        assert file_store.covered_files() == ["dog.py"]

    def test_missing_document_is_empty(self, tmp_path):
        assert FileStore(str(tmp_path / "absent.json")).get_coverage_report() == {}

    def test_flat_document_is_runtime(self, store_path, clock):
        store_path.write_text(json.dumps(DOG))
        store = FileStore(str(store_path), clock=clock)
        assert store.coverage(TrackingPhase.RUNTIME)["dog.py"].file_hash == "abcd"
        assert store.coverage(TrackingPhase.EAGER) == {}

    def test_corrupt_document(self, store_path, file_store):
        store_path.write_text("{not json")
        with pytest.raises(PersistenceError):
            file_store.get_coverage_report()

    def test_non_object_document(self, store_path, file_store):
        store_path.write_text("[1, 2]")
        with pytest.raises(PersistenceError):
            file_store.covered_files()


class TestWriting:
    def test_save_report(self, file_store, project):
        cat = str(project / "b.py")
        file_store.save_report({cat: [0, 1]})
        assert file_store.coverage()[cat].data[1] == 1

    def test_save_keeps_other_bucket(self, file_store, store_path, project):
        a = str(project / "a.py")
        file_store.save_report({a: [None, 1]}, TrackingPhase.EAGER)
        document = json.loads(store_path.read_text())
        assert set(document) == {"eager", "runtime"}
        assert "dog.py" in document["runtime"]
        assert document["eager"][a]["data"] == [None, 1]

    def test_save_creates_directory(self, tmp_path, project):
        store = FileStore(str(tmp_path / "nested" / "dir" / "cov.json"))
        store.save_report({str(project / "a.py"): [1]})
        assert os.path.exists(store.path)

    def test_no_temp_files_left(self, file_store, tmp_path, project):
        file_store.save_report({str(project / "a.py"): [1]})
        assert not [p for p in os.listdir(tmp_path) if p.endswith(".tmp")]

    def test_clear(self, file_store, store_path):
        file_store.clear()
        assert not store_path.exists()

    def test_clear_missing_document(self, tmp_path):
        FileStore(str(tmp_path / "absent.json")).clear()

    def test_clear_file(self, file_store, project):
        a = str(project / "a.py")
        file_store.save_report({a: [1]}, TrackingPhase.EAGER)
        file_store.clear_file("dog.py")
        assert file_store.covered_files() == [a]


class TestLocking:
    def test_lock_timeout(self, file_store):
        fd = os.open(file_store.lock_path, os.O_RDWR | os.O_CREAT)
        try:
            # flock locks belong to the open file description, so a second
            # descriptor in this process still conflicts
            fcntl.flock(fd, fcntl.LOCK_EX)
            file_store.timeout = 0.05
            with pytest.raises(StoreTimeoutError):
                file_store.save_report({"x.py": [1]})
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)


def _hammer(path, target, rounds):
    store = FileStore(path)
    for _ in range(rounds):
        store.save_report({target: [None, 1]})


@pytest.mark.slow
class TestMultiProcess:
    def test_processes_never_lose_updates(self, tmp_path, project):
        path = str(tmp_path / "shared.json")
        target = str(project / "a.py")
        ctx = multiprocessing.get_context("fork")
        procs = [ctx.Process(target=_hammer, args=(path, target, 25)) for _ in range(4)]
        for p in procs:
            p.start()
        for p in procs:
            p.join()

        assert FileStore(path).get_coverage_report()[target].data == [None, 100]
