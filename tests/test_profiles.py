import json

import pytest

from common.interface import PrinterProfile
from config import settings
from config.profiles import ProfileStore


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path / "profiles.json")


def test_missing_file_reads_as_empty(store):
    assert store.list() == []
    assert store.get_feature_flag() is False


def test_corrupt_file_reads_as_empty(store):
    store.path.write_text("{not json", encoding="utf-8")
    assert store.list() == []
    assert store.get_feature_flag() is False


def test_save_normalizes_profiles(store):
    saved = store.save(
        [
            {"host": " 192.168.1.20 ", "port": -1, "widthDots": 500, "copies": 0},
            PrinterProfile("192.168.1.21", port=9101, width_dots=384, name="Bar"),
        ]
    )
    first, second = saved
    assert (first.host, first.port, first.width_dots, first.copies, first.enabled) == (
        "192.168.1.20",
        9100,
        576,
        1,
        True,
    )
    assert first.name == "192.168.1.20"
    assert second.name == "Bar" and second.width_dots == 384

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert [entry["host"] for entry in on_disk["printers"]] == ["192.168.1.20", "192.168.1.21"]
    assert store.list() == saved


def test_save_rejects_profile_without_host(store):
    with pytest.raises(ValueError):
        store.save([{"port": 9100}])


def test_feature_flag_round_trip_keeps_printers(store):
    store.save([{"host": "10.0.0.1"}])
    store.set_feature_flag(True)
    assert store.get_feature_flag() is True
    assert [p.host for p in store.list()] == ["10.0.0.1"]


def test_legacy_host_seeds_default_profile_in_memory(store, monkeypatch):
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.100")
    monkeypatch.setitem(settings.NETWORK, "port", 9101)

    profiles = store.list()
    assert len(profiles) == 1
    assert profiles[0].name == "Default"
    assert profiles[0].address == "192.168.0.100:9101"
    assert profiles[0].is_default
    assert not store.path.exists()


def test_default_location_follows_settings(monkeypatch, tmp_path):
    assert ProfileStore().path.parent == settings.config_dir()
    monkeypatch.setitem(settings.ROUTING, "profiles_file", str(tmp_path / "custom.json"))
    assert ProfileStore().path == tmp_path / "custom.json"
