"""
CSV serialization for flat report rows.

The header comes from the first record's keys. A string value containing a
comma is wrapped in double quotes; quotes and newlines inside values are
written as-is.
"""
from typing import Any, List, Mapping, Sequence

from exceptions import ValidationError


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str) and "," in value:
        return f'"{value}"'
    return str(value)


def rows_to_csv(rows: Sequence[Mapping[str, Any]]) -> str:
    if not rows:
        raise ValidationError("No data to export")

    headers: List[str] = list(rows[0].keys())
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join(_format_value(row.get(header)) for header in headers))
    return "\n".join(lines)


def csv_filename(prefix: str, stamp: str) -> str:
    return f"{prefix}-{stamp}.csv"
