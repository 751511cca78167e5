from typing import List, Optional, Sequence

from refinery.utils.cells import Row, row_from_json
from refinery.utils.json_sanitize import dumps_compact
from refinery.utils.llm_gateway import GatewayRequest, ResilientGateway
from refinery.utils.prompting import render_prompt, rows_json
from refinery.utils.response_schemas import CLEAN_SPEC
from refinery.utils.usage import UsageTracker

CLEAN_PROMPT_TEMPLATE = """
Apply these cleaning instructions to the rows below: $instructions

COLUMNS (keep exactly these keys): $headers
ROWS: $rows

Return the cleaned rows as a JSON array of objects. Keep the same structure and only
change what the instructions require.
"""


class CleanerAgent:
    def __init__(self, gateway: ResilientGateway):
        self.gateway = gateway

    async def clean_rows(
        self,
        rows: Sequence[Row],
        headers: Sequence[str],
        instructions: Sequence[str],
        usage: Optional[UsageTracker] = None,
    ) -> Optional[List[Row]]:
        """
        Returns the transformed rows, or None when the collaborator's answer was
        unusable (the caller must then leave its data untouched).
        """
        prompt = render_prompt(
            CLEAN_PROMPT_TEMPLATE,
            instructions=dumps_compact(list(instructions)),
            headers=dumps_compact(list(headers)),
            rows=rows_json(rows),
        )
        payload = await self.gateway.execute(
            GatewayRequest(operation="clean", prompt=prompt),
            CLEAN_SPEC,
            usage=usage,
        )
        if payload is None:
            return None
        return [row_from_json(obj, headers) for obj in payload]
