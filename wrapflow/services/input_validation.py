"""
Payload shape and range normalisation for template mutations.

Every public helper either returns a cleaned value or raises
``ValidationError`` with a ``details`` dict keyed by field name.

Ranges:
    name            1–255 chars (surrounding whitespace stripped)
    description     ≤ 1000 chars
    version         1–50 chars
    order           int ≥ 1
    estimated_duration  int ≥ 0 (days) or None
    estimated_hours 0–1000
    priority        LOW | MEDIUM | HIGH | CRITICAL
    dependency_type FINISH_TO_START | START_TO_START | FINISH_TO_FINISH | START_TO_FINISH
"""

from wrapflow.core.exceptions import ValidationError
from wrapflow.models.workflow import (
    DEFAULT_DEPENDENCY_TYPE,
    DEFAULT_PRIORITY,
    DEPENDENCY_TYPES,
    MAX_ESTIMATED_HOURS,
    TASK_PRIORITIES,
)

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
MAX_VERSION_LENGTH = 50


def _fail(field: str, message: str):
    raise ValidationError(f"{field}: {message}", details={field: message})


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ── Scalars ──────────────────────────────────────────────────────────────


def require_name(value, field: str = "name") -> str:
    if not isinstance(value, str) or not value.strip():
        _fail(field, "is required")
    value = value.strip()
    if len(value) > MAX_NAME_LENGTH:
        _fail(field, f"must be at most {MAX_NAME_LENGTH} characters")
    return value


def optional_description(value, field: str = "description") -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        _fail(field, "must be a string")
    if len(value) > MAX_DESCRIPTION_LENGTH:
        _fail(field, f"must be at most {MAX_DESCRIPTION_LENGTH} characters")
    return value


def require_version(value, field: str = "version") -> str:
    if not isinstance(value, str) or not value.strip():
        _fail(field, "is required")
    value = value.strip()
    if len(value) > MAX_VERSION_LENGTH:
        _fail(field, f"must be at most {MAX_VERSION_LENGTH} characters")
    return value


def require_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        _fail(field, "must be a boolean")
    return value


def require_order(value, field: str = "order") -> int:
    if not _is_int(value) or value < 1:
        _fail(field, "must be an integer >= 1")
    return value


def optional_duration(value, field: str = "estimated_duration"):
    if value is None:
        return None
    if not _is_int(value) or value < 0:
        _fail(field, "must be an integer >= 0")
    return value


def require_hours(value, field: str = "estimated_hours") -> float:
    if not _is_number(value) or value < 0 or value > MAX_ESTIMATED_HOURS:
        _fail(field, f"must be a number between 0 and {MAX_ESTIMATED_HOURS}")
    return float(value)


def require_priority(value, field: str = "priority") -> str:
    if value is None:
        return DEFAULT_PRIORITY
    if value not in TASK_PRIORITIES:
        _fail(field, f"must be one of {list(TASK_PRIORITIES)}")
    return value


def require_dependency_type(value, field: str = "dependency_type") -> str:
    if value is None:
        return DEFAULT_DEPENDENCY_TYPE
    if value not in DEPENDENCY_TYPES:
        _fail(field, f"must be one of {list(DEPENDENCY_TYPES)}")
    return value


def normalize_skills(value, field: str = "required_skills") -> list:
    """List of non-empty skill labels; a label may appear only once."""
    if value is None:
        return []
    if not isinstance(value, list):
        _fail(field, "must be a list of strings")
    skills = []
    for label in value:
        if not isinstance(label, str) or not label.strip():
            _fail(field, "must contain non-empty strings")
        label = label.strip()
        if label in skills:
            _fail(field, f"duplicate skill '{label}'")
        skills.append(label)
    return skills


def optional_form_template(value, field: str = "form_template"):
    if value is None:
        return None
    if not isinstance(value, (dict, list)):
        _fail(field, "must be an object or list")
    return value


def require_id(value, field: str = "id") -> str:
    if not isinstance(value, str) or not value:
        _fail(field, "must be a non-empty string id")
    return value


# ── Collections ──────────────────────────────────────────────────────────


def require_list(value, field: str, *, max_size: int | None = None) -> list:
    if not isinstance(value, list) or not value:
        _fail(field, "must be a non-empty list")
    if max_size is not None and len(value) > max_size:
        _fail(field, f"must contain at most {max_size} items")
    return value


def require_id_list(value, field: str = "ids", *, max_size: int | None = None) -> list:
    """Non-empty list of unique string ids, order preserved."""
    ids = require_list(value, field, max_size=max_size)
    seen = []
    for item in ids:
        require_id(item, field)
        if item in seen:
            _fail(field, f"duplicate id '{item}'")
        seen.append(item)
    return seen


def require_object(value, field: str = "item") -> dict:
    if not isinstance(value, dict):
        _fail(field, "must be an object")
    return value


# ── Entity payloads ──────────────────────────────────────────────────────


def workflow_fields(data: dict, *, partial: bool = False) -> dict:
    """Clean workflow fields. ``partial`` only validates keys that are present."""
    data = require_object(data, "workflow")
    out = {}
    if not partial or "name" in data:
        out["name"] = require_name(data.get("name"))
    if "description" in data:
        out["description"] = optional_description(data.get("description"))
    if not partial or "version" in data:
        version = data.get("version")
        out["version"] = require_version(version if version is not None or partial else "1.0")
    if not partial or "is_active" in data:
        active = data.get("is_active")
        out["is_active"] = require_bool(True if active is None and not partial else active, "is_active")
    return out


def phase_fields(data: dict, *, partial: bool = False, require_order_field: bool = True) -> dict:
    data = require_object(data, "phase")
    out = {}
    if not partial or "name" in data:
        out["name"] = require_name(data.get("name"))
    if "description" in data:
        out["description"] = optional_description(data.get("description"))
    if "order" in data or (not partial and require_order_field):
        out["order"] = require_order(data.get("order"))
    if "estimated_duration" in data:
        out["estimated_duration"] = optional_duration(data.get("estimated_duration"))
    return out


def task_fields(data: dict, *, partial: bool = False) -> dict:
    data = require_object(data, "task")
    out = {}
    if not partial or "name" in data:
        out["name"] = require_name(data.get("name"))
    if "description" in data:
        out["description"] = optional_description(data.get("description"))
    if not partial or "estimated_hours" in data:
        hours = data.get("estimated_hours")
        out["estimated_hours"] = require_hours(0 if hours is None and not partial else hours)
    if not partial or "priority" in data:
        out["priority"] = require_priority(data.get("priority"))
    if "required_skills" in data:
        out["required_skills"] = normalize_skills(data.get("required_skills"))
    if "form_template" in data:
        out["form_template"] = optional_form_template(data.get("form_template"))
    return out


def dependency_tuple(data: dict, field: str = "dependency") -> tuple:
    """Return ``(source_task_id, target_task_id, dependency_type)``."""
    data = require_object(data, field)
    return (
        require_id(data.get("source_task_id"), "source_task_id"),
        require_id(data.get("target_task_id"), "target_task_id"),
        require_dependency_type(data.get("dependency_type")),
    )
