import json
import math
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel

from refinery.utils.cells import MissingCell, NumberCell, TextCell, cell_to_json


def to_jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (NumberCell, TextCell, MissingCell)):
        return cell_to_json(value)
    if isinstance(value, BaseModel):
        # Field by field so nested cells keep their plain JSON form.
        return {name: to_jsonable(getattr(value, name)) for name in type(value).model_fields}
    if isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): to_jsonable(val) for key, val in value.items()}
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return to_jsonable(float(value))
    if isinstance(value, np.ndarray):
        return [to_jsonable(item) for item in value.tolist()]
    if value is pd.NA:
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    return str(value)


def dumps_compact(obj: Any) -> str:
    return json.dumps(to_jsonable(obj), ensure_ascii=False, separators=(",", ":"))


def dump_json(path: str, obj: Any) -> None:
    payload = to_jsonable(obj)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
