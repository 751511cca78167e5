from string import Template
from typing import Any, Sequence

from refinery.utils.cells import Row, row_to_json
from refinery.utils.json_sanitize import dumps_compact


def render_prompt(template_str: str, **kwargs: Any) -> str:
    """
    Fills $placeholders with string.Template; braces in embedded JSON samples are
    left alone and unknown placeholders stay as written.
    """
    values = {key: str(value) for key, value in kwargs.items()}
    return Template(template_str).safe_substitute(**values)


def rows_json(rows: Sequence[Row]) -> str:
    """Compact JSON array of plain row objects, as sent to the collaborator."""
    return dumps_compact([row_to_json(row) for row in rows])
