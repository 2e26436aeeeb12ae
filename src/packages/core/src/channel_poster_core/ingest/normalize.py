"""Row normalization utilities."""
import json
from typing import Any

import pandas as pd


def normalize_value(v: Any) -> str:
    """Turn a cell value into the stripped string a caption can use."""
    if v is None:
        return ""
    if isinstance(v, float) and pd.isna(v):
        return ""
    if isinstance(v, (dict, list)):
        return json.dumps(v) if v else ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v).strip()


def normalize_row(row: dict) -> dict[str, str]:
    """Normalize a row dict to string keys and string values."""
    return {str(k).strip(): normalize_value(v) for k, v in row.items()}
