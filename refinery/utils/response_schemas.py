"""
Structured-output contracts for every reasoning-collaborator operation.

Each ResponseSpec pairs a strict pydantic validator with the default value that a
malformed-but-reachable response collapses to, plus (optionally) the JSON schema
forwarded to the provider as a structured-output hint.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from refinery.utils.llm_json_repair import JsonPayloadParseError, parse_json_with_repair


class SchemaMismatch(ValueError):
    """A reachable collaborator returned a payload that does not fit the expected shape."""


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ActionPayload(_Wire):
    kind: str = Field(alias="type")
    title: str = Field(min_length=1)
    description: str = ""
    impacted_rows: int = Field(default=0, alias="impactedRows")
    suggestion: str = Field(min_length=1)


class InsightPayload(_Wire):
    title: str = Field(min_length=1)
    description: str
    importance: Literal["high", "medium", "low"]
    suggestion: Optional[str] = None

    @field_validator("importance", mode="before")
    @classmethod
    def _lower_importance(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class AuditPayload(_Wire):
    actions: List[ActionPayload] = Field(default_factory=list)
    insights: List[InsightPayload] = Field(default_factory=list)


class RuleParamsPayload(_Wire):
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    format: Optional[Literal["email", "date", "number"]] = None


class RulePayload(_Wire):
    column: str = Field(min_length=1)
    kind: Literal["range", "format", "regex", "required", "unique"] = Field(alias="type")
    severity: Literal["error", "warning"] = "warning"
    params: RuleParamsPayload = Field(default_factory=RuleParamsPayload)


class ChartPayload(_Wire):
    type: Literal["bar", "line", "pie", "scatter", "area"]
    title: str
    x_axis: str = Field(alias="xAxis")
    y_axis: str = Field(alias="yAxis")
    id: Optional[str] = None
    description: Optional[str] = None


class KpiPayload(_Wire):
    label: str = Field(min_length=1)
    value: Union[float, str]
    trend: Optional[float] = None
    trend_direction: Optional[Literal["up", "down", "neutral"]] = Field(default=None, alias="trendDirection")


Shape = Literal["array", "object", "text"]


class ResponseSpec:
    def __init__(
        self,
        name: str,
        shape: Shape,
        adapter: Optional[TypeAdapter],
        default_factory: Callable[[], Any],
        provider_schema: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.shape = shape
        self.adapter = adapter
        self.default_factory = default_factory
        self.provider_schema = provider_schema

    @property
    def json_mode(self) -> bool:
        return self.shape != "text"

    def default(self) -> Any:
        return self.default_factory()

    def schema_hint(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.provider_schema) if self.provider_schema else None

    def parse(self, raw_text: str) -> Any:
        """Validates raw collaborator text; raises SchemaMismatch on any shape problem."""
        if self.shape == "text":
            text = (raw_text or "").strip()
            if not text:
                raise SchemaMismatch(f"{self.name}: empty text response")
            return text
        try:
            payload, _trace = parse_json_with_repair(raw_text, shape=self.shape, actor=self.name)
        except JsonPayloadParseError as err:
            raise SchemaMismatch(f"{self.name}: {err}") from err
        try:
            return self.adapter.validate_python(payload)
        except ValidationError as err:
            raise SchemaMismatch(f"{self.name}: {err.error_count()} validation error(s)") from err


_STRING = {"type": "string"}
_INTEGER = {"type": "integer"}
_NUMBER = {"type": "number"}


def _object(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def _array(items: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "array", "items": items}


_CHART_PROPERTIES = {
    "type": {"type": "string", "enum": ["bar", "line", "pie", "scatter", "area"]},
    "title": _STRING,
    "xAxis": _STRING,
    "yAxis": _STRING,
}

AUDIT_SPEC = ResponseSpec(
    name="audit",
    shape="object",
    adapter=TypeAdapter(AuditPayload),
    default_factory=AuditPayload,
    provider_schema=_object(
        {
            "actions": _array(
                _object(
                    {
                        "type": _STRING,
                        "title": _STRING,
                        "description": _STRING,
                        "impactedRows": _INTEGER,
                        "suggestion": _STRING,
                    },
                    ["type", "title", "description", "suggestion"],
                )
            ),
            "insights": _array(
                _object(
                    {
                        "title": _STRING,
                        "description": _STRING,
                        "importance": {"type": "string", "enum": ["high", "medium", "low"]},
                    },
                    ["title", "description", "importance"],
                )
            ),
        },
        ["actions", "insights"],
    ),
)

RULES_SPEC = ResponseSpec(
    name="validation_rules",
    shape="array",
    adapter=TypeAdapter(List[RulePayload]),
    default_factory=list,
    provider_schema=_array(
        _object(
            {
                "column": _STRING,
                "type": {"type": "string", "enum": ["range", "format", "regex", "required", "unique"]},
                "severity": {"type": "string", "enum": ["error", "warning"]},
            },
            ["column", "type", "severity"],
        )
    ),
)

# Row payloads have data-dependent keys, so no provider schema is sent for them.
CLEAN_SPEC = ResponseSpec(
    name="clean",
    shape="array",
    adapter=TypeAdapter(List[Dict[str, Any]]),
    default_factory=lambda: None,
)

QUERY_SPEC = ResponseSpec(
    name="query",
    shape="array",
    adapter=TypeAdapter(List[Dict[str, Any]]),
    default_factory=list,
)

CHART_SPEC = ResponseSpec(
    name="chart_suggestion",
    shape="object",
    adapter=TypeAdapter(Optional[ChartPayload]),
    default_factory=lambda: None,
    provider_schema=_object(_CHART_PROPERTIES, ["type", "title", "xAxis", "yAxis"]),
)

DASHBOARD_SPEC = ResponseSpec(
    name="dashboard",
    shape="array",
    adapter=TypeAdapter(List[ChartPayload]),
    default_factory=list,
    provider_schema=_array(
        _object(
            dict(_CHART_PROPERTIES, id=_STRING, description=_STRING),
            ["type", "title", "xAxis", "yAxis"],
        )
    ),
)

KPI_SPEC = ResponseSpec(
    name="kpis",
    shape="array",
    adapter=TypeAdapter(List[KpiPayload]),
    default_factory=list,
    provider_schema=_array(
        _object(
            {
                "label": _STRING,
                "value": _STRING,
                "trend": _NUMBER,
                "trendDirection": {"type": "string", "enum": ["up", "down", "neutral"]},
            },
            ["label", "value"],
        )
    ),
)

REPORT_SPEC = ResponseSpec(
    name="report",
    shape="text",
    adapter=None,
    default_factory=lambda: "Report generation unavailable.",
)

ANSWER_SPEC = ResponseSpec(
    name="answer",
    shape="text",
    adapter=None,
    default_factory=lambda: "I couldn't derive an answer from the data provided.",
)
