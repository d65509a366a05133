"""Render cached rows and audit entries as a table, JSON or YAML."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from enum import Enum
from typing import Any

import yaml
from pydantic import BaseModel

from ghub_desk.errors import InvalidFormat


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


def parse_output_format(raw: str | None) -> OutputFormat:
    value = (raw or "").strip().lower()
    if not value:
        return OutputFormat.TABLE
    try:
        return OutputFormat(value)
    except ValueError:
        raise InvalidFormat("format", raw or "", "target", "expected table, json or yaml") from None


def to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=False)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_plain(v) for v in value]
    return value


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(_cell(v) for v in value)
    return str(value).replace("\n", " ")


def render_table(rows: Sequence[Mapping[str, Any]], columns: Sequence[str] | None = None) -> str:
    if not rows:
        return "(no rows)"
    cols = list(columns) if columns else list(rows[0].keys())
    cells = [[_cell(row.get(c)) for c in cols] for row in rows]
    widths = [max(len(c), *(len(r[i]) for r in cells)) for i, c in enumerate(cols)]

    def _line(values: Iterable[str]) -> str:
        return "  ".join(v.ljust(w) for v, w in zip(values, widths, strict=True)).rstrip()

    out = [_line(c.upper() for c in cols), _line("-" * w for w in widths)]
    out += [_line(r) for r in cells]
    return "\n".join(out)


def render(
    payload: Any,
    fmt: OutputFormat | str = OutputFormat.TABLE,
    *,
    columns: Sequence[str] | None = None,
) -> str:
    """Format rows (mappings or pydantic models) or a single mapping for output."""

    fmt = parse_output_format(fmt.value if isinstance(fmt, OutputFormat) else fmt)
    data = to_plain(payload)
    if fmt is OutputFormat.JSON:
        return json.dumps(data, indent=2, ensure_ascii=False)
    if fmt is OutputFormat.YAML:
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True).rstrip("\n")

    if isinstance(data, Mapping):
        data = [data]
    return render_table(data or [], columns)
