"""
plan.py — replay an operator plan (JSON) against a Session

A plan records the column edits an operator would otherwise make by hand:

    {
      "options": {"generate_periods": true, "clean_job_type": true,
                  "dayfirst": true, "duplicate_headers": "last"},
      "max_rows": 10,
      "steps": [
        {"action": "merge", "target": "Name", "sources": ["Nombre"]},
        {"action": "detach", "file": "b.csv", "header": "Nombre"},
        {"action": "add_custom", "header": "Region", "value": "Norte"},
        {"action": "inject_placeholder", "header": "SUBCATEGORIA", "after": "Barrio_desc"},
        {"action": "inject_standard_placeholders"},
        {"action": "rename", "header": "Fecha_Leg", "to": "Fecha"},
        {"action": "remove", "header": "Notas"},
        {"action": "deselect", "header": "Interno"},
        {"action": "select", "header": "Interno"}
      ]
    }

Steps run in order. Columns are found by header, case-insensitively; files by
full path or by file name. A step that cannot apply is skipped with a warning,
the same way the engine ignores an invalid request. A malformed plan raises
PlanError.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from datamerge.errors import PlanError
from datamerge.models import DEFAULT_CUSTOM_HEADER, UnifiedColumn
from datamerge.session import Session
from datamerge.transform import TransformOptions

PLAN_ACTIONS = {
    "merge": ("target", "sources"),
    "detach": ("file", "header"),
    "add_custom": (),
    "inject_placeholder": ("header", "after"),
    "inject_standard_placeholders": (),
    "rename": ("header", "to"),
    "remove": ("header",),
    "deselect": ("header",),
    "select": ("header",),
}
OPTION_KEYS = {"generate_periods", "clean_job_type", "dayfirst", "duplicate_headers"}
BOOLEAN_OPTION_KEYS = ("generate_periods", "clean_job_type", "dayfirst")
TEXT_STEP_KEYS = ("target", "file", "header", "after", "to")

STARTER_PLAN = {
    "options": {
        "generate_periods": True,
        "clean_job_type": True,
        "dayfirst": True,
        "duplicate_headers": "last",
    },
    "max_rows": 10,
    "steps": [
        {"action": "merge", "target": "Name", "sources": ["Nombre"]},
        {"action": "inject_standard_placeholders"},
    ],
}


def validate_plan(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise PlanError("Plan root must be a JSON object.")

    options = payload.get("options", {})
    if not isinstance(options, dict):
        raise PlanError("Plan 'options' must be an object.")
    unknown = sorted(set(options) - OPTION_KEYS)
    if unknown:
        raise PlanError(f"Unknown plan options: {', '.join(unknown)}")
    for key in BOOLEAN_OPTION_KEYS:
        if key in options and not isinstance(options[key], bool):
            raise PlanError(f"Plan option '{key}' must be true or false.")
    if "duplicate_headers" in options and not isinstance(options["duplicate_headers"], str):
        raise PlanError("Plan option 'duplicate_headers' must be a string.")

    max_rows = payload.get("max_rows")
    if max_rows is not None and (not isinstance(max_rows, int) or isinstance(max_rows, bool) or max_rows < 0):
        raise PlanError("Plan 'max_rows' must be a non-negative integer.")

    steps = payload.get("steps", [])
    if not isinstance(steps, list):
        raise PlanError("Plan 'steps' must be a list.")
    for number, step in enumerate(steps, start=1):
        if not isinstance(step, dict):
            raise PlanError(f"Step {number} must be an object.")
        action = step.get("action")
        if action not in PLAN_ACTIONS:
            raise PlanError(f"Step {number}: unknown action {action!r}")
        missing = [key for key in PLAN_ACTIONS[action] if key not in step]
        if missing:
            raise PlanError(f"Step {number} ({action}): missing {', '.join(missing)}")
        for key in TEXT_STEP_KEYS:
            if key in step and not isinstance(step[key], str):
                raise PlanError(f"Step {number} ({action}): '{key}' must be a string")
        if action == "merge" and (
            not isinstance(step["sources"], list)
            or not all(isinstance(source, str) for source in step["sources"])
        ):
            raise PlanError(f"Step {number} (merge): 'sources' must be a list of strings")
    return payload


def load_plan(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise PlanError(f"Plan not found: {path}")
    if path.suffix.lower() != ".json":
        raise PlanError("Plan must be a .json file")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise PlanError(f"Could not read plan: {exc}") from exc
    return validate_plan(payload)


def options_from_plan(plan: dict[str, Any], base: Optional[TransformOptions] = None) -> TransformOptions:
    values = {
        "generate_periods": base.generate_periods if base else False,
        "clean_job_type": base.clean_job_type if base else False,
        "dayfirst": base.dayfirst if base else True,
        "duplicate_headers": base.duplicate_headers if base else "last",
    }
    values.update(plan.get("options", {}))
    try:
        return TransformOptions(**values)
    except ValueError as exc:
        raise PlanError(str(exc)) from exc


def _find_column(session: Session, header: str, exclude: Optional[UnifiedColumn] = None) -> Optional[UnifiedColumn]:
    for column in session.registry:
        if column is not exclude and column.has_header(header):
            return column
    return None


def _apply_merge(session: Session, step: dict[str, Any]) -> list[str]:
    resolver = session.resolver
    target = _find_column(session, step["target"])
    if target is None:
        return [f"merge: target column '{step['target']}' not found"]

    warnings: list[str] = []
    if resolver.target is not target:
        resolver.set_target(target)
    for header in step["sources"]:
        source = _find_column(session, header, exclude=target)
        if source is None:
            warnings.append(f"merge: source column '{header}' not found")
        elif not resolver.merge(source):
            warnings.append(f"merge: '{header}' shares a source file with '{target.header_name}', skipped")
    resolver.set_target(None)
    return warnings


def apply_step(session: Session, step: dict[str, Any]) -> list[str]:
    action = step["action"]
    resolver = session.resolver

    if action == "merge":
        return _apply_merge(session, step)

    if action == "detach":
        file_id = session.find_file(step["file"])
        if file_id is None or resolver.detach(file_id, step["header"]) is None:
            return [f"detach: no column maps '{step['header']}' from '{step['file']}'"]
        return []

    if action == "add_custom":
        resolver.add_custom(
            step.get("header", DEFAULT_CUSTOM_HEADER),
            default_value=str(step.get("value", "")),
        )
        return []

    if action == "inject_placeholder":
        resolver.inject_placeholder(step["header"], step["after"])
        return []

    if action == "inject_standard_placeholders":
        resolver.inject_standard_placeholders()
        return []

    column = _find_column(session, step["header"])
    if column is None:
        return [f"{action}: column '{step['header']}' not found"]
    if action == "rename":
        if not session.rename(column, step["to"]):
            return [f"rename: '{step['header']}' needs a non-empty new name"]
    elif action == "remove":
        resolver.remove(column)
    elif action == "deselect":
        column.is_selected = False
    elif action == "select":
        column.is_selected = True
    return []


def apply_plan(session: Session, plan: dict[str, Any]) -> list[str]:
    """Apply plan options and steps to ``session``; returns warnings for skipped steps."""
    session.options = options_from_plan(plan, session.options)
    warnings: list[str] = []
    for number, step in enumerate(plan.get("steps", []), start=1):
        warnings.extend(f"Step {number}: {message}" for message in apply_step(session, step))
    return warnings
