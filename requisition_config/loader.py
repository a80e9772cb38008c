"""
Configuration Loader (``requisition_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``requisition_config.schema``.  Runtime callers go through
``requisition_config.get_active_config()``; this module is the tooling
underneath it.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required keys.
* Every gate has an SLA budget, and budgets are non-negative.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid dates, timezones or budgets  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from requisition_config.schema import (
    CalendarDef,
    ConcurrencyDef,
    NumberingDef,
    RolesDef,
    SlaBudgetDef,
    WorkflowConfiguration,
)

GATES = ("validate", "review", "authorize", "management")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (date object or ISO string)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_calendar(data: dict[str, Any]) -> CalendarDef:
    timezone_name = data["timezone"]
    try:
        ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown timezone {timezone_name!r}") from exc

    weekend_days = tuple(int(d) for d in data.get("weekend_days", (5, 6)))
    if any(d < 0 or d > 6 for d in weekend_days):
        raise ValueError(f"weekend_days must be 0..6 (Monday=0), got {list(weekend_days)}")

    holidays = tuple(sorted({parse_date(h) for h in data.get("holidays") or ()}))
    return CalendarDef(
        timezone=timezone_name,
        weekend_days=weekend_days,
        holidays=holidays,
    )


def parse_sla_budgets(data: dict[str, Any]) -> tuple[SlaBudgetDef, ...]:
    """Parse ``{gate: {normal: n, alta: m}}``.  ``alta`` defaults to ``normal``."""
    unknown = sorted(set(data) - set(GATES))
    if unknown:
        raise ValueError(f"SLA budgets for unknown gates: {unknown}")

    budgets = []
    for gate in GATES:
        entry = data[gate]
        normal = int(entry["normal"])
        alta = int(entry.get("alta", normal))
        if normal < 0 or alta < 0:
            raise ValueError(f"SLA budget for gate '{gate}' must be >= 0")
        budgets.append(SlaBudgetDef(gate=gate, normal_days=normal, alta_days=alta))
    return tuple(budgets)


def parse_roles(data: dict[str, Any]) -> RolesDef:
    return RolesDef(validator=data["validator"], management=data["management"])


def parse_numbering(data: dict[str, Any]) -> NumberingDef:
    fmt = data.get("requisition_format", NumberingDef.requisition_format)
    try:
        fmt.format(seq=1)
    except (KeyError, IndexError, ValueError) as exc:
        raise ValueError(
            f"requisition_format must use a single '{{seq}}' field, got {fmt!r}"
        ) from exc
    return NumberingDef(requisition_format=fmt)


def parse_concurrency(data: dict[str, Any]) -> ConcurrencyDef:
    retries = int(data.get("conflict_retries", ConcurrencyDef.conflict_retries))
    if retries < 0:
        raise ValueError(f"conflict_retries must be >= 0, got {retries}")
    return ConcurrencyDef(conflict_retries=retries)


def parse_configuration(data: dict[str, Any]) -> WorkflowConfiguration:
    """Parse a full configuration set from a dict."""
    config = WorkflowConfiguration(
        config_id=data["config_id"],
        version=int(data["version"]),
        calendar=parse_calendar(data["calendar"]),
        sla_budgets=parse_sla_budgets(data["sla"]),
        roles=parse_roles(data["roles"]),
        numbering=parse_numbering(data.get("numbering") or {}),
        concurrency=parse_concurrency(data.get("concurrency") or {}),
    )
    return replace(config, checksum=compute_checksum(data))


def load_configuration(path: Path) -> WorkflowConfiguration:
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON rendering of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
