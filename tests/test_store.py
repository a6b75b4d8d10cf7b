"""
Tests for the JSON file key-value store.
"""

import json
import threading

from invoice_batch.store import JsonFileStore


class TestJsonFileStore:

    def test_missing_file_reads_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        assert store.get("anything") is None

    def test_set_then_get(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        store.set("a", "1")
        store.set("b", "2")
        assert store.get("a") == "1"
        assert store.get("b") == "2"

    def test_values_survive_new_instance(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        JsonFileStore(path).set("key", "value")
        assert JsonFileStore(path).get("key") == "value"
        assert json.loads(path.read_text(encoding="utf-8")) == {"key": "value"}

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(path)
        assert store.get("key") is None
        store.set("key", "value")
        assert store.get("key") == "value"

    def test_no_temporary_files_left(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        store.set("key", "value")
        assert list(tmp_path.glob("*.tmp")) == []
        assert (tmp_path / "state.json").exists()

    def test_locked_is_reentrant(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        with store.locked():
            store.set("key", "value")
            assert store.get("key") == "value"

    def test_concurrent_writers_keep_every_key(self, tmp_path):
        path = tmp_path / "state.json"

        def write(worker: int) -> None:
            store = JsonFileStore(path)
            for i in range(25):
                store.set(f"w{worker}-{i}", str(i))

        threads = [threading.Thread(target=write, args=(w,)) for w in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data) == 100
        assert data["w3-24"] == "24"
