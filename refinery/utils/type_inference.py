from collections import Counter
from typing import Dict, List, Optional, Sequence

import pandas as pd

from refinery.utils.cells import Cell, NumberCell, Row, TextCell, cell_to_json
from refinery.utils.missing import present_values
from refinery.utils.models import ColumnStats, ColumnType, TopValue
from refinery.utils.number_parsing import parse_strict_number

TOP_VALUES_LIMIT = 5


def _as_number(cell: Cell) -> Optional[float]:
    if isinstance(cell, NumberCell):
        return cell.value
    if isinstance(cell, TextCell):
        return parse_strict_number(cell.value)
    return None


def infer_column_type(values: Sequence[Cell]) -> ColumnType:
    """
    Strict all-or-nothing rule: a column is numeric only when every present value
    parses as a number. An all-missing column is vacuously numeric.
    """
    for cell in values:
        if _as_number(cell) is None:
            return "categorical"
    return "numeric"


def _numeric_summary(values: Sequence[Cell]) -> Dict[str, Optional[float]]:
    if not values:
        return {"min": None, "max": None, "avg": None}
    series = pd.Series([_as_number(cell) for cell in values], dtype="float64")
    return {
        "min": float(series.min()),
        "max": float(series.max()),
        "avg": float(series.mean()),
    }


def _top_values(values: Sequence[Cell]) -> tuple:
    # Counter.most_common keeps first-seen order for ties.
    counts = Counter(values)
    return tuple(
        TopValue(value=cell_to_json(cell), count=count)
        for cell, count in counts.most_common(TOP_VALUES_LIMIT)
    )


def profile_column(column: str, rows: Sequence[Row]) -> ColumnStats:
    values = present_values(rows, column)
    column_type = infer_column_type(values)
    summary = _numeric_summary(values) if column_type == "numeric" else {}
    return ColumnStats(
        column=column,
        type=column_type,
        unique_count=len(set(values)),
        missing_count=len(rows) - len(values),
        top_values=_top_values(values),
        **summary,
    )


def profile_columns(headers: Sequence[str], rows: Sequence[Row]) -> List[ColumnStats]:
    """Pure function of (headers, rows): identical input always yields identical stats."""
    return [profile_column(header, rows) for header in headers]
