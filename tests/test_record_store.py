import json

import pytest

from qemuctl.error_handling import PersistError
from qemuctl.record_store import RecordStore, VMRecord


def make_record(name="vm1", **overrides):
    values = dict(name=name, memory="2G", cpu="host", threads="2",
                  disk=f"/vms/{name}/{name}.qcow2", iso="")
    values.update(overrides)
    return VMRecord(**values)


def test_missing_file_loads_empty(tmp_path):
    store = RecordStore.load(str(tmp_path / "absent.json"))

    assert len(store) == 0
    assert store.get("vm1") is None


@pytest.mark.parametrize("content", [
    "{not json",
    "[]",
    '{"vms": []}',
    "",
])
def test_corrupt_file_loads_empty(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)

    assert len(RecordStore.load(str(path))) == 0


def test_save_then_load_round_trip(tmp_path):
    path = str(tmp_path / "cfg" / "config.json")
    store = RecordStore(path=path)
    store.insert(make_record("vm1"))
    store.insert(make_record("vm2", iso="/iso/x.iso", memory="8G"))

    store.save()
    loaded = RecordStore.load(path)

    assert loaded.records() == store.records()


def test_save_of_loaded_store_is_a_no_op(tmp_path):
    path = tmp_path / "config.json"
    store = RecordStore(path=str(path))
    store.insert(make_record("b"))
    store.insert(make_record("a"))
    store.save()
    first = path.read_text()

    RecordStore.load(str(path)).save()

    assert path.read_text() == first


def test_document_layout(tmp_path):
    path = tmp_path / "config.json"
    store = RecordStore(path=str(path))
    store.insert(make_record("vm1", iso="/iso/x.iso"))
    store.save()

    assert json.loads(path.read_text()) == {
        "vms": {
            "vm1": {
                "name": "vm1",
                "memory": "2G",
                "cpu": "host",
                "threads": "2",
                "disk": "/vms/vm1/vm1.qcow2",
                "iso": "/iso/x.iso",
            }
        }
    }


def test_load_tolerates_partial_entries(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "vms": {
            "old": {"memory": "1G", "cpu": "host", "disk": "/d.qcow2"},
            "broken": "nope",
        }
    }))

    store = RecordStore.load(str(path))

    assert store.names() == ["old"]
    record = store.get("old")
    assert record.name == "old"
    assert record.iso == ""
    assert record.threads == ""


def test_insert_overwrites_and_remove_returns_record(tmp_path):
    store = RecordStore(path=str(tmp_path / "c.json"))
    store.insert(make_record("vm1", memory="2G"))
    store.insert(make_record("vm1", memory="16G"))

    assert len(store) == 1
    assert store.get("vm1").memory == "16G"
    assert "vm1" in store

    removed = store.remove("vm1")
    assert removed.memory == "16G"
    assert store.remove("vm1") is None


def test_save_failure_raises_persist_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = RecordStore(path=str(blocker / "config.json"))
    store.insert(make_record())

    with pytest.raises(PersistError) as exc_info:
        store.save()
    assert exc_info.value.code == "QEMUCTL-E601"


def test_save_leaves_no_temp_files(tmp_path):
    store = RecordStore(path=str(tmp_path / "config.json"))
    store.insert(make_record())
    store.save()

    assert [p.name for p in tmp_path.iterdir()] == ["config.json"]


def test_default_location_follows_xdg(tmp_path, monkeypatch):
    monkeypatch.delenv("QEMUCTL_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    assert RecordStore().path == str(tmp_path / "qemuctl" / "config.json")
