"""
Tagged cell values used by every Row.

A Row maps a column name to exactly one of NumberCell, TextCell or MissingCell,
so missingness and type checks never have to guess at raw Python values.
"""

from __future__ import annotations

import json
import math
from typing import Annotated, Any, Dict, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from refinery.utils.number_parsing import parse_strict_number


class NumberCell(BaseModel):
    kind: Literal["number"] = "number"
    value: float
    model_config = ConfigDict(frozen=True)


class TextCell(BaseModel):
    kind: Literal["text"] = "text"
    value: str
    model_config = ConfigDict(frozen=True)


class MissingCell(BaseModel):
    kind: Literal["missing"] = "missing"
    model_config = ConfigDict(frozen=True)


Cell = Annotated[Union[NumberCell, TextCell, MissingCell], Field(discriminator="kind")]
Row = Dict[str, Cell]

MISSING = MissingCell()


def coerce_field(raw: Optional[str]) -> Cell:
    """Parser coercion: absent -> Missing, numeric -> Number, everything else -> Text ("" kept)."""
    if raw is None:
        return MISSING
    if raw == "":
        return TextCell(value="")
    number = parse_strict_number(raw)
    if number is not None:
        return NumberCell(value=number)
    return TextCell(value=raw)


def cell_from_json(value: Any) -> Cell:
    if value is None:
        return MISSING
    if isinstance(value, bool):
        return TextCell(value="true" if value else "false")
    if isinstance(value, (int, float)):
        number = float(value)
        if not math.isfinite(number):
            return MISSING
        return NumberCell(value=number)
    if isinstance(value, str):
        return TextCell(value=value)
    if isinstance(value, (NumberCell, TextCell, MissingCell)):
        return value
    try:
        return TextCell(value=json.dumps(value, ensure_ascii=False, separators=(",", ":")))
    except (TypeError, ValueError):
        return TextCell(value=str(value))


def cell_to_json(cell: Cell) -> Any:
    if isinstance(cell, NumberCell):
        if cell.value.is_integer():
            return int(cell.value)
        return cell.value
    if isinstance(cell, TextCell):
        return cell.value
    return None


def row_from_json(obj: Dict[str, Any], headers: Optional[Iterable[str]] = None) -> Row:
    """
    Converts a collaborator row object into a Row.
    When headers are given, keys outside them are dropped.
    """
    allowed = set(headers) if headers is not None else None
    row: Row = {}
    for key, value in obj.items():
        name = str(key)
        if allowed is not None and name not in allowed:
            continue
        row[name] = cell_from_json(value)
    return row


def row_to_json(row: Row) -> Dict[str, Any]:
    return {key: cell_to_json(cell) for key, cell in row.items()}
