import uuid
from typing import List, Optional, Sequence, Tuple

from refinery.utils.cells import Row
from refinery.utils.json_sanitize import dumps_compact
from refinery.utils.llm_gateway import GatewayRequest, ResilientGateway
from refinery.utils.models import AnalysisInsight, CleaningAction, ColumnStats, RuleParams, ValidationRule
from refinery.utils.prompting import render_prompt, rows_json
from refinery.utils.response_schemas import AUDIT_SPEC, RULES_SPEC, AuditPayload
from refinery.utils.usage import UsageTracker

AUDIT_PROMPT_TEMPLATE = """
You are a data quality auditor.

DATASET: $dataset_name
HEADERS: $headers
COLUMN METADATA: $stats
SAMPLE ROWS (first $sample_count of $row_count): $sample

INSTRUCTIONS:
1. Identify 3-5 concrete cleaning actions. For each give: type (one of missing_values,
   duplicates, outliers, formatting, inconsistency, validation_fix), title, description,
   impactedRows (estimated count) and suggestion (a precise instruction another model can
   execute on the rows).
2. Identify 3 data quality insights with importance high, medium or low.

Return JSON:
{"actions": [{"type": "...", "title": "...", "description": "...", "impactedRows": 0, "suggestion": "..."}],
 "insights": [{"title": "...", "description": "...", "importance": "high|medium|low"}]}
"""

RULES_PROMPT_TEMPLATE = """
Suggest 3 validation rules for a dataset with these columns.
COLUMN METADATA: $stats

Each rule: column (must be one of $headers), type (range, format, regex, required or unique),
severity (error or warning) and optional params {min, max, pattern, format}.
Return a JSON array.
"""


def stats_summary(stats: Sequence[ColumnStats]) -> List[dict]:
    return [
        {"col": s.column, "type": s.type, "missing": s.missing_count, "unique": s.unique_count}
        for s in stats
    ]


def new_action_id() -> str:
    return uuid.uuid4().hex[:9]


def _to_actions(payload: AuditPayload) -> List[CleaningAction]:
    # Collaborator ids and statuses are never trusted.
    return [
        CleaningAction(
            id=new_action_id(),
            kind=item.kind,
            title=item.title,
            description=item.description,
            affected_row_count=max(0, item.impacted_rows),
            status="pending",
            suggested_transform=item.suggestion,
        )
        for item in payload.actions
    ]


def _to_insights(payload: AuditPayload) -> List[AnalysisInsight]:
    return [
        AnalysisInsight(
            title=item.title,
            description=item.description,
            importance=item.importance,
            suggestion=item.suggestion,
        )
        for item in payload.insights
    ]


class AuditAgent:
    def __init__(self, gateway: ResilientGateway):
        self.gateway = gateway

    async def audit(
        self,
        dataset_name: str,
        headers: Sequence[str],
        stats: Sequence[ColumnStats],
        sample: Sequence[Row],
        row_count: int,
        usage: Optional[UsageTracker] = None,
    ) -> Tuple[List[CleaningAction], List[AnalysisInsight]]:
        prompt = render_prompt(
            AUDIT_PROMPT_TEMPLATE,
            dataset_name=dataset_name,
            headers=dumps_compact(list(headers)),
            stats=dumps_compact(stats_summary(stats)),
            sample_count=len(sample),
            row_count=row_count,
            sample=rows_json(sample),
        )
        payload = await self.gateway.execute(
            GatewayRequest(operation="audit", prompt=prompt),
            AUDIT_SPEC,
            usage=usage,
        )
        return _to_actions(payload), _to_insights(payload)

    async def suggest_validation_rules(
        self,
        headers: Sequence[str],
        stats: Sequence[ColumnStats],
        usage: Optional[UsageTracker] = None,
    ) -> List[ValidationRule]:
        prompt = render_prompt(
            RULES_PROMPT_TEMPLATE,
            headers=dumps_compact(list(headers)),
            stats=dumps_compact(stats_summary(stats)),
        )
        payloads = await self.gateway.execute(
            GatewayRequest(operation="validation_rules", prompt=prompt),
            RULES_SPEC,
            usage=usage,
        )
        known = set(headers)
        rules: List[ValidationRule] = []
        for item in payloads:
            if item.column not in known:
                continue
            rules.append(
                ValidationRule(
                    id=f"r-{len(rules)}",
                    column=item.column,
                    kind=item.kind,
                    params=RuleParams(**item.params.model_dump()),
                    severity=item.severity,
                    active=True,
                )
            )
        return rules
