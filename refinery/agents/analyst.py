from typing import List, Optional, Sequence

from refinery.utils.cells import Row, row_from_json, row_to_json
from refinery.utils.json_sanitize import dumps_compact
from refinery.utils.llm_gateway import GatewayRequest, ResilientGateway
from refinery.utils.models import KPI, ChartSpec, ColumnStats, QueryMode
from refinery.utils.prompting import render_prompt, rows_json
from refinery.utils.response_schemas import (
    ANSWER_SPEC,
    CHART_SPEC,
    DASHBOARD_SPEC,
    KPI_SPEC,
    QUERY_SPEC,
    REPORT_SPEC,
    ChartPayload,
)
from refinery.utils.usage import UsageTracker

NL_QUERY_TEMPLATE = """
Filter, transform or aggregate this data according to: "$query"
DATA: $rows

Return ONLY the resulting JSON array of row objects. Return [] if nothing matches.
"""

SQL_QUERY_TEMPLATE = """
Evaluate this SQL statement against a table named data: "$query"
DATA: $rows

Return ONLY the result set as a JSON array of row objects. Return [] for an empty result.
"""

CHART_TEMPLATE = """
Which chart best presents this result? Keys: $keys. Sample record: $sample
Return JSON: {"type": "bar|line|pie|scatter|area", "title": "...", "xAxis": "<key>", "yAxis": "<key>"}.
"""

ANSWER_TEMPLATE = """
You are a data analyst answering: "$question"
CONTEXT ROWS: $rows

Answer clearly. If you calculate something, show the steps.
"""

REPORT_TEMPLATE = """
Write an executive summary report for the dataset "$dataset_name".
Focus: $focus
Columns: $headers
Column metadata: $stats

Structure it as Markdown with the sections: Executive Summary, Key Findings,
Strategic Recommendations. Be concise.
"""

KPI_TEMPLATE = """
Compute 3-4 key performance indicators from this dataset sample.
HEADERS: $headers
SAMPLE: $rows

Return a JSON array of {"label": "...", "value": "...", "trend": <number or null>,
"trendDirection": "up|down|neutral"}.
"""

DASHBOARD_TEMPLATE = """
Design a dashboard. Goal: $goal
Columns: $headers
Column metadata: $stats

Suggest 4-6 charts as a JSON array of {"id", "type", "title", "xAxis", "yAxis", "description"}
where type is one of bar, line, pie, scatter, area and the axes are column names.
"""


def _chart_from_payload(payload: ChartPayload) -> ChartSpec:
    return ChartSpec(
        type=payload.type,
        title=payload.title,
        x_axis=payload.x_axis,
        y_axis=payload.y_axis,
        id=payload.id,
        description=payload.description,
    )


def _stats_brief(stats: Sequence[ColumnStats]) -> str:
    return dumps_compact(
        [{"column": s.column, "type": s.type, "unique": s.unique_count, "missing": s.missing_count} for s in stats]
    )


class AnalystAgent:
    def __init__(self, gateway: ResilientGateway):
        self.gateway = gateway

    async def query_rows(
        self,
        sample: Sequence[Row],
        query_text: str,
        mode: QueryMode,
        usage: Optional[UsageTracker] = None,
    ) -> List[Row]:
        template = SQL_QUERY_TEMPLATE if mode == "sql" else NL_QUERY_TEMPLATE
        prompt = render_prompt(template, query=query_text, rows=rows_json(sample))
        payload = await self.gateway.execute(
            GatewayRequest(operation=f"query_{mode}", prompt=prompt),
            QUERY_SPEC,
            usage=usage,
        )
        return [row_from_json(obj) for obj in payload]

    async def suggest_chart(
        self,
        rows: Sequence[Row],
        usage: Optional[UsageTracker] = None,
    ) -> Optional[ChartSpec]:
        if not rows:
            return None
        first = rows[0]
        prompt = render_prompt(
            CHART_TEMPLATE,
            keys=", ".join(first.keys()),
            sample=dumps_compact(row_to_json(first)),
        )
        payload = await self.gateway.execute(
            GatewayRequest(operation="chart_suggestion", prompt=prompt),
            CHART_SPEC,
            usage=usage,
        )
        return _chart_from_payload(payload) if payload is not None else None

    async def answer_question(
        self,
        sample: Sequence[Row],
        question: str,
        usage: Optional[UsageTracker] = None,
    ) -> str:
        prompt = render_prompt(ANSWER_TEMPLATE, question=question, rows=rows_json(sample))
        return await self.gateway.execute(
            GatewayRequest(operation="answer", prompt=prompt),
            ANSWER_SPEC,
            usage=usage,
        )

    async def generate_report(
        self,
        dataset_name: str,
        headers: Sequence[str],
        stats: Sequence[ColumnStats],
        focus: Optional[str] = None,
        usage: Optional[UsageTracker] = None,
    ) -> str:
        prompt = render_prompt(
            REPORT_TEMPLATE,
            dataset_name=dataset_name,
            focus=focus or "Key Trends and Insights",
            headers=", ".join(headers),
            stats=_stats_brief(stats),
        )
        return await self.gateway.execute(
            GatewayRequest(operation="report", prompt=prompt),
            REPORT_SPEC,
            usage=usage,
        )

    async def extract_kpis(
        self,
        headers: Sequence[str],
        sample: Sequence[Row],
        usage: Optional[UsageTracker] = None,
    ) -> List[KPI]:
        prompt = render_prompt(KPI_TEMPLATE, headers=", ".join(headers), rows=rows_json(sample))
        payloads = await self.gateway.execute(
            GatewayRequest(operation="kpis", prompt=prompt),
            KPI_SPEC,
            usage=usage,
        )
        return [
            KPI(label=p.label, value=p.value, trend=p.trend, trend_direction=p.trend_direction)
            for p in payloads
        ]

    async def suggest_dashboard(
        self,
        headers: Sequence[str],
        stats: Sequence[ColumnStats],
        goal: Optional[str] = None,
        usage: Optional[UsageTracker] = None,
    ) -> List[ChartSpec]:
        prompt = render_prompt(
            DASHBOARD_TEMPLATE,
            goal=goal or "General Overview",
            headers=", ".join(headers),
            stats=_stats_brief(stats),
        )
        payloads = await self.gateway.execute(
            GatewayRequest(operation="dashboard", prompt=prompt),
            DASHBOARD_SPEC,
            usage=usage,
        )
        return [_chart_from_payload(p) for p in payloads]
