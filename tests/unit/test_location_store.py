import json

import pytest

from weather_station.api.services.errors import InvalidInputError
from weather_station.infrastructure.storage.location_store import (
    LocationStore,
)


@pytest.fixture
def store(tmp_path):
    store = LocationStore(tmp_path, seed_postal_codes=["75454", "75070"])
    store.initialize()
    return store


def _read(store):
    return json.loads(store.storage_file.read_text(encoding="utf-8"))


class TestInitialize:
    def test_seeds_and_persists_configuration(self, store):
        assert store.initialized
        assert store.list_all() == ["75070", "75454"]
        data = _read(store)
        assert data["zipCodes"] == ["75070", "75454"]
        assert "lastUpdated" in data

    def test_invalid_seeds_are_ignored(self, tmp_path):
        seeds = ["75454", "abc", " "]
        store = LocationStore(tmp_path, seed_postal_codes=seeds)
        store.initialize()
        assert store.list_all() == ["75454"]

    def test_existing_file_wins_over_seeds(self, tmp_path):
        (tmp_path / "zip-codes.json").write_text(
            json.dumps({"zipCodes": ["60601", "bad", 12345]})
        )
        store = LocationStore(tmp_path, seed_postal_codes=["75454"])
        store.initialize()
        assert store.list_all() == ["60601"]

    def test_corrupt_file_falls_back_to_seeds(self, tmp_path):
        (tmp_path / "zip-codes.json").write_text("{not json")
        store = LocationStore(tmp_path, seed_postal_codes=["75035"])
        store.initialize()
        assert store.list_all() == ["75035"]
        assert _read(store)["zipCodes"] == ["75035"]

    def test_initialize_is_idempotent(self, store):
        store.add("60601")
        store.initialize()
        assert store.has("60601")

    def test_unusable_directory_falls_back_to_memory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = LocationStore(blocker / "data", seed_postal_codes=["75454"])
        store.initialize()

        assert store.initialized
        assert store.list_all() == ["75454"]
        assert store.add("60601") is True
        assert store.count() == 2

    def test_empty_without_seeds(self, tmp_path):
        store = LocationStore(tmp_path)
        store.initialize()
        assert store.count() == 0
        assert not store.storage_file.exists()


class TestMutations:
    def test_add_new_and_existing(self, store):
        assert store.add(" 60601 ") is True
        assert store.add("60601") is False
        assert "60601" in _read(store)["zipCodes"]

    @pytest.mark.parametrize("value", ["6060", "abcde", "606011", ""])
    def test_add_rejects_invalid(self, store, value):
        with pytest.raises(InvalidInputError):
            store.add(value)
        assert store.count() == 2

    def test_remove(self, store):
        assert store.remove("75070") is True
        assert store.remove("75070") is False
        assert not store.has("75070")
        assert _read(store)["zipCodes"] == ["75454"]

    def test_survives_restart(self, store, tmp_path):
        store.add("60601")
        reopened = LocationStore(tmp_path, seed_postal_codes=["99999"])
        reopened.initialize()
        assert reopened.list_all() == ["60601", "75070", "75454"]

    def test_stats(self, store):
        stats = store.get_stats()
        assert stats["totalZipCodes"] == 2
        assert stats["zipCodes"] == ["75070", "75454"]
        assert stats["storageFile"].endswith("zip-codes.json")
        assert stats["initialized"] is True
