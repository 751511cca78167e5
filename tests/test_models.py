import pytest
from pydantic import ValidationError

from refinery.connectors import parse_csv_text
from refinery.graph import dataset_from_table
from refinery.utils.cells import MISSING, NumberCell, TextCell, cell_from_json, cell_to_json, row_from_json
from refinery.utils.models import Dataset
from refinery.utils.type_inference import profile_columns


def test_dataset_rejects_keys_outside_headers():
    stats = tuple(profile_columns(["a"], []))
    with pytest.raises(ValidationError):
        Dataset(name="d", headers=("a",), records=({"b": NumberCell(value=1.0)},), column_stats=stats)


def test_dataset_rejects_misaligned_stats():
    stats = tuple(profile_columns(["b", "a"], []))
    with pytest.raises(ValidationError):
        Dataset(name="d", headers=("a", "b"), records=(), column_stats=stats)


def test_dataset_is_frozen_and_exports_frame():
    dataset = dataset_from_table("d", parse_csv_text("a,b\n1,x\n,y\n2"))
    with pytest.raises(ValidationError):
        dataset.name = "other"

    frame = dataset.to_frame()
    assert list(frame.columns) == ["a", "b"]
    assert frame["b"].tolist()[:2] == ["x", "y"]
    assert frame["b"].isna().tolist()[2]


def test_collaborator_values_become_cells():
    assert cell_from_json(None) == MISSING
    assert cell_from_json(True) == TextCell(value="true")
    assert cell_from_json(4) == NumberCell(value=4.0)
    assert cell_from_json(float("inf")) == MISSING
    assert cell_from_json("12") == TextCell(value="12")
    assert cell_from_json({"k": [1]}) == TextCell(value='{"k":[1]}')
    assert cell_to_json(NumberCell(value=4.0)) == 4
    assert cell_to_json(NumberCell(value=4.5)) == 4.5


def test_row_from_json_drops_unknown_keys_when_headers_given():
    row = row_from_json({"a": 1, "extra": "x"}, headers=["a", "b"])
    assert row == {"a": NumberCell(value=1.0)}
