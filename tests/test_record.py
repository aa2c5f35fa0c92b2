import copy

import pytest

from graphsnap.errors import MalformedRecordError
from graphsnap.record import RECORD_VERSION, SnapshotRecord, validate_record_data


def sample():
    return {
        "version": RECORD_VERSION,
        "object_count": 3,
        "types": ["graphsnap.testing:Unit", "graphsnap.testing:Item"],
        "structural": [
            {"id": 0, "type": -1, "path": "", "index": 0, "fields": [[1, "s:Level"]]},
            {"id": 1, "type": 0, "parent": 0, "index": 2, "fields": [[1, "s:Grunt"], [2, 7, "o:2"]]},
        ],
        "freestanding": [{"id": 2, "type": 1, "fields": [[0]]}],
    }


def test_from_dict_and_back():
    data = sample()
    record = SnapshotRecord.from_dict(data)
    assert record.object_count == 3
    assert record.root.is_anchored
    assert record.structural[1].field_groups == [["s:Grunt"], [7, "o:2"]]
    assert record.freestanding[0].field_groups == [[]]
    assert record.to_dict() == data


def test_schema_errors_are_reported():
    data = sample()
    del data["types"]
    data["structural"][1]["index"] = -1
    with pytest.raises(MalformedRecordError) as exc:
        SnapshotRecord.from_dict(data)
    assert len(exc.value.errors) == 2
    human = exc.value.to_human()
    assert "at <root>" in human
    assert "at structural/1/index" in human


def test_structural_entry_needs_exactly_one_placement():
    data = sample()
    data["structural"][1]["path"] = "Hall/Grunt"
    with pytest.raises(MalformedRecordError):
        validate_record_data(data)


def test_count_prefix_must_match():
    data = sample()
    data["structural"][1]["fields"][1] = [3, 7, "o:2"]
    with pytest.raises(MalformedRecordError, match="declares 3 values"):
        SnapshotRecord.from_dict(data)


@pytest.mark.parametrize(
    "mutate, message",
    [
        (lambda d: d.update(object_count=4), "object_count"),
        (lambda d: d["freestanding"][0].update(id=1), "Duplicate"),
        (lambda d: d["freestanding"][0].update(id=9), "outside"),
        (lambda d: d["structural"][1].update(parent=5), "parent 5"),
        (lambda d: d["structural"][1].update(parent=2), "not an earlier structural"),
        (lambda d: d["structural"][1].update(parent=1), "parent 1"),
        (lambda d: d["structural"][1].update(parent=-1), "detached"),
        (lambda d: d["structural"][1].update(type=7), "unknown type"),
        (lambda d: d.update(version=RECORD_VERSION + 1), "newer"),
        (lambda d: d["structural"].reverse(), "root"),
    ],
)
def test_inconsistent_records(mutate, message):
    data = copy.deepcopy(sample())
    mutate(data)
    with pytest.raises(MalformedRecordError, match=message):
        SnapshotRecord.from_dict(data)


def test_validation_can_be_skipped():
    data = sample()
    data["extra"] = {"anything": True}
    data["types"].append("")
    record = SnapshotRecord.from_dict(data, validate=False)
    assert record.types[-1] == ""


def test_empty_record():
    record = SnapshotRecord.from_dict(
        {"version": 1, "object_count": 0, "types": [], "structural": [], "freestanding": []}
    )
    assert record.object_count == 0
    with pytest.raises(MalformedRecordError):
        record.root
