from refinery.connectors import parse_csv_text
from refinery.utils.cells import NumberCell, TextCell
from refinery.utils.missing import is_effectively_missing, present_values
from refinery.utils.type_inference import infer_column_type, profile_columns


def test_profile_mixed_missing_numeric_and_text():
    table = parse_csv_text("a,b\n1,x\n2,y\n,z")
    stats_a, stats_b = profile_columns(table.headers, table.rows)

    assert stats_a.type == "numeric"
    assert stats_a.missing_count == 1
    assert stats_a.unique_count == 2
    assert (stats_a.min, stats_a.max, stats_a.avg) == (1.0, 2.0, 1.5)

    assert stats_b.type == "categorical"
    assert stats_b.missing_count == 0
    assert stats_b.unique_count == 3
    assert stats_b.min is None


def test_profile_is_pure():
    table = parse_csv_text("a,b\n1,x\n2,y\n,z")
    assert profile_columns(table.headers, table.rows) == profile_columns(table.headers, table.rows)


def test_missing_plus_present_equals_row_count():
    table = parse_csv_text("a,b,c\n1,,x\n,\n3,4\n")
    stats = profile_columns(table.headers, table.rows)
    assert len(stats) == len(table.headers)
    for column_stats in stats:
        present = present_values(table.rows, column_stats.column)
        assert column_stats.missing_count + len(present) == len(table.rows)
        assert column_stats.unique_count <= len(present)


def test_all_missing_column_is_vacuously_numeric():
    table = parse_csv_text("a,b\n1,\n2,\n")
    stats_b = profile_columns(table.headers, table.rows)[1]
    assert stats_b.type == "numeric"
    assert stats_b.missing_count == 2
    assert stats_b.min is None and stats_b.avg is None


def test_one_non_numeric_value_makes_column_categorical():
    table = parse_csv_text("v\n1\n2\nthree\n")
    stats = profile_columns(table.headers, table.rows)[0]
    assert stats.type == "categorical"
    assert stats.max is None


def test_numeric_text_cells_count_as_numeric():
    rows = [{"n": TextCell(value="5")}, {"n": NumberCell(value=7.0)}]
    assert infer_column_type([row["n"] for row in rows]) == "numeric"
    stats = profile_columns(["n"], rows)[0]
    assert (stats.min, stats.max) == (5.0, 7.0)


def test_top_values_keep_first_seen_order_for_ties():
    table = parse_csv_text("c\nx\ny\ny\nz\nx\n")
    top = profile_columns(table.headers, table.rows)[0].top_values
    assert [(t.value, t.count) for t in top] == [("x", 2), ("y", 2), ("z", 1)]


def test_whitespace_text_and_zero_are_not_missing():
    assert not is_effectively_missing(TextCell(value=" "))
    assert not is_effectively_missing(NumberCell(value=0.0))
    assert is_effectively_missing(TextCell(value=""))
    assert is_effectively_missing(None)
