import json

from judolwatch.storage import JsonPreferenceStore, MemoryPreferenceStore
from judolwatch.storage.preferences import load_page_size, page_size_validator, save_page_size


def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "prefs" / "preferences.json"
    save_page_size(JsonPreferenceStore(path), 50)

    assert load_page_size(JsonPreferenceStore(path)) == 50
    assert json.loads(path.read_text()) == {"items_per_page": 50}
    assert not (path.parent / "preferences.json.tmp").exists()


def test_json_store_keeps_other_keys(tmp_path):
    path = tmp_path / "preferences.json"
    store = JsonPreferenceStore(path)
    store.set("theme", "dark")
    save_page_size(store, 25)

    assert store.get("theme", str, "light") == "dark"
    assert load_page_size(store) == 25


def test_corrupt_file_reads_as_default(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_text("{not json")
    store = JsonPreferenceStore(path)

    assert load_page_size(store) == 10
    save_page_size(store, 5)
    assert load_page_size(store) == 5


def test_page_size_validator():
    assert page_size_validator("25") == 25
    assert page_size_validator(7) is None
    assert page_size_validator(True) is None
    assert page_size_validator(10.7) is None
    assert page_size_validator(25.0) is None
    assert page_size_validator(" 50 ") == 50
    assert page_size_validator("1e1") is None


def test_memory_store_ignores_invalid_values():
    store = MemoryPreferenceStore({"items_per_page": 9999})
    assert load_page_size(store) == 10
