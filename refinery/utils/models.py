"""
Domain models shared by the profiler, the orchestrator and the query executor.

Everything here is frozen: a new committed Dataset or a re-statused CleaningAction
is always a new object (model_copy), never an in-place edit.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional, Tuple, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, model_validator

from refinery.utils.cells import Row, cell_to_json

ColumnType = Literal["numeric", "categorical", "date", "unknown"]
ActionStatus = Literal["pending", "applied", "rejected"]
Importance = Literal["high", "medium", "low"]
RuleKind = Literal["range", "format", "regex", "required", "unique"]
Severity = Literal["error", "warning"]
ChartType = Literal["bar", "line", "pie", "scatter", "area"]
QueryMode = Literal["natural_language", "sql"]


class TopValue(BaseModel):
    value: Any
    count: int
    model_config = ConfigDict(frozen=True)


class ColumnStats(BaseModel):
    column: str
    type: ColumnType
    unique_count: int
    missing_count: int
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None
    outlier_count: Optional[int] = None
    top_values: Tuple[TopValue, ...] = ()
    model_config = ConfigDict(frozen=True)


class CleaningAction(BaseModel):
    id: str
    kind: str
    title: str
    description: str = ""
    affected_row_count: int = 0
    status: ActionStatus = "pending"
    suggested_transform: str
    model_config = ConfigDict(frozen=True)


class AnalysisInsight(BaseModel):
    title: str
    description: str
    importance: Importance
    suggestion: Optional[str] = None
    model_config = ConfigDict(frozen=True)


class RuleParams(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    format: Optional[Literal["email", "date", "number"]] = None
    model_config = ConfigDict(frozen=True)


class ValidationRule(BaseModel):
    id: str
    column: str
    kind: RuleKind
    params: RuleParams = Field(default_factory=RuleParams)
    severity: Severity = "warning"
    active: bool = True
    model_config = ConfigDict(frozen=True)


class ChartSpec(BaseModel):
    type: ChartType
    title: str
    x_axis: str
    y_axis: str
    id: Optional[str] = None
    description: Optional[str] = None
    model_config = ConfigDict(frozen=True)


class KPI(BaseModel):
    label: str
    value: Union[float, str]
    trend: Optional[float] = None
    trend_direction: Optional[Literal["up", "down", "neutral"]] = None
    model_config = ConfigDict(frozen=True)


class Dataset(BaseModel):
    name: str
    headers: Tuple[str, ...]
    records: Tuple[Row, ...]
    column_stats: Tuple[ColumnStats, ...]
    source_type: str = "csv"
    last_cleaned: Optional[datetime] = None
    cleaning_history: Tuple[CleaningAction, ...] = ()
    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Dataset":
        if len(set(self.headers)) != len(self.headers):
            raise ValueError("Dataset headers must be unique")
        known = set(self.headers)
        for index, record in enumerate(self.records):
            extra = set(record) - known
            if extra:
                raise ValueError(f"Record {index} has columns outside headers: {sorted(extra)}")
        stat_columns = tuple(stat.column for stat in self.column_stats)
        if stat_columns != self.headers:
            raise ValueError("column_stats must match headers one-to-one and in order")
        return self

    @property
    def row_count(self) -> int:
        return len(self.records)

    def stats_for(self, column: str) -> ColumnStats:
        for stat in self.column_stats:
            if stat.column == column:
                return stat
        raise KeyError(column)

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {header: cell_to_json(record[header]) if header in record else None for header in self.headers}
            for record in self.records
        ]
        return pd.DataFrame(rows, columns=list(self.headers))


class QueryResult(BaseModel):
    records: Tuple[Row, ...]
    mode: QueryMode
    sampled_rows: int
    chart: Optional[ChartSpec] = None
    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def columns(self) -> List[str]:
        return list(self.records[0].keys()) if self.records else []
