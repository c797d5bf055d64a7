"""
Document payload schema — the typed sections a document payload is made of.

A payload is a JSON object keyed by section name:

    contact_info       ContactInfo
    business_context   BusinessContext
    pain_points        PainPoints
    goals_objectives   GoalsObjectives
    notes              free-form text (the only untyped part)

Every section is optional while a document is a draft. Unknown sections
or fields, and values of the wrong type, are rejected on every write.
Completion additionally requires the fields in COMPLETION_REQUIREMENTS.

Drafts carry partial sections (payload deltas); merge_payload() overlays
a delta on the canonical payload field by field.
"""

import copy
from dataclasses import dataclass, field, fields

from email_validator import EmailNotValidError, validate_email

from docledger.core.exceptions import ValidationError

URGENCY_LEVELS = ("low", "medium", "high", "critical")

NOTES_SECTION = "notes"


def _text():
    return field(default=None, metadata={"kind": "text"})


def _list():
    return field(default=None, metadata={"kind": "list"})


def _mapping():
    return field(default=None, metadata={"kind": "map"})


@dataclass
class ContactInfo:
    business_name: str | None = _text()
    contact_person: str | None = _text()
    email: str | None = _text()
    phone: str | None = _text()
    website: str | None = _text()
    social_media: dict | None = _mapping()


@dataclass
class BusinessContext:
    industry: str | None = _text()
    business_type: str | None = _text()
    team_size: int | None = field(default=None, metadata={"kind": "count"})
    current_platform: str | None = _text()
    digital_presence: list | None = _list()
    marketing_channels: list | None = _list()


@dataclass
class PainPoints:
    primary_challenges: list | None = _list()
    technical_issues: list | None = _list()
    urgency_level: str | None = field(default=None, metadata={"kind": "choice", "choices": URGENCY_LEVELS})
    impact_assessment: str | None = _text()
    current_solution_gaps: list | None = _list()


@dataclass
class Timeline:
    desired_start: str | None = _text()
    target_completion: str | None = _text()
    milestones: list | None = _list()


@dataclass
class GoalsObjectives:
    primary_goals: list | None = _list()
    secondary_goals: list | None = _list()
    success_metrics: list | None = _list()
    kpis: list | None = _list()
    timeline: dict | None = field(default=None, metadata={"kind": "nested", "type": Timeline})
    budget_range: str | None = _text()
    budget_constraints: list | None = _list()


SECTION_TYPES = {
    "contact_info": ContactInfo,
    "business_context": BusinessContext,
    "pain_points": PainPoints,
    "goals_objectives": GoalsObjectives,
}

# Section → field that marks the section as filled in, for completion
# percentage and completion validation.
COMPLETION_REQUIREMENTS = {
    "contact_info": "business_name",
    "business_context": "industry",
    "pain_points": "primary_challenges",
    "goals_objectives": "primary_goals",
}


# ── Shape validation ──────────────────────────────────────────────────────────


def _check_value(path: str, value, meta: dict, errors: dict) -> None:
    kind = meta.get("kind")
    if value is None:
        return
    if kind == "text":
        if not isinstance(value, str):
            errors[path] = "must be a string"
    elif kind == "list":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            errors[path] = "must be a list of strings"
    elif kind == "map":
        if not isinstance(value, dict):
            errors[path] = "must be an object"
    elif kind == "count":
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            errors[path] = "must be a non-negative integer"
    elif kind == "choice":
        if value not in meta["choices"]:
            errors[path] = f"must be one of: {', '.join(meta['choices'])}"
    elif kind == "nested":
        _check_section(path, value, meta["type"], errors)


def _check_section(path: str, data, section_type, errors: dict) -> None:
    if not isinstance(data, dict):
        errors[path] = "must be an object"
        return
    known = {f.name: f for f in fields(section_type)}
    for name, value in data.items():
        if name not in known:
            errors[f"{path}.{name}"] = "unknown field"
            continue
        _check_value(f"{path}.{name}", value, known[name].metadata, errors)


def validate_shape(payload) -> dict:
    """Check sections, field names and value types. Returns a deep copy.

    Used for both full payloads and partial draft deltas; completeness is
    not checked here.

    Raises:
        ValidationError: with one entry per offending dotted path.
    """
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Payload must be an object", details={"payload": "must be an object"})

    errors: dict[str, str] = {}
    for section, data in payload.items():
        if section == NOTES_SECTION:
            if data is not None and not isinstance(data, str):
                errors[NOTES_SECTION] = "must be a string"
            continue
        section_type = SECTION_TYPES.get(section)
        if section_type is None:
            errors[section] = "unknown section"
            continue
        _check_section(section, data, section_type, errors)

    if errors:
        raise ValidationError("Payload has invalid sections or fields", details=errors)
    return copy.deepcopy(payload)


def parse_sections(payload: dict) -> dict:
    """Build the typed section objects for a shape-valid payload."""
    parsed = {}
    for section, section_type in SECTION_TYPES.items():
        data = (payload or {}).get(section)
        if data:
            parsed[section] = section_type(**data)
    return parsed


# ── Merge ─────────────────────────────────────────────────────────────────────


def merge_payload(current: dict, delta: dict) -> dict:
    """Overlay a draft delta onto the canonical payload, field by field.

    A field set to None in the delta is removed; notes are replaced whole.
    Neither input is mutated.
    """
    merged = copy.deepcopy(current or {})
    for section, data in (delta or {}).items():
        if section == NOTES_SECTION:
            if data is None:
                merged.pop(NOTES_SECTION, None)
            else:
                merged[NOTES_SECTION] = data
            continue
        target = dict(merged.get(section) or {})
        for name, value in data.items():
            if value is None:
                target.pop(name, None)
            else:
                target[name] = copy.deepcopy(value)
        if target:
            merged[section] = target
        else:
            merged.pop(section, None)
    return merged


# ── Completion ────────────────────────────────────────────────────────────────


def _is_filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return len(value) > 0
    return True


def completion_percentage(payload: dict) -> int:
    """Share of required sections that are filled in, 0–100."""
    payload = payload or {}
    filled = sum(
        1 for section, required in COMPLETION_REQUIREMENTS.items()
        if _is_filled((payload.get(section) or {}).get(required))
    )
    return filled * 100 // len(COMPLETION_REQUIREMENTS)


def validate_for_completion(payload: dict) -> None:
    """Raise ValidationError unless every required section is present and well-formed."""
    sections = parse_sections(validate_shape(payload))
    errors: dict[str, str] = {}
    for section, required in COMPLETION_REQUIREMENTS.items():
        parsed = sections.get(section)
        if parsed is None:
            errors[section] = "section is required"
        elif not _is_filled(getattr(parsed, required)):
            errors[f"{section}.{required}"] = "required"

    contact = sections.get("contact_info")
    email = contact.email if contact is not None else None
    if not _is_filled(email):
        errors.setdefault("contact_info.email", "required")
    else:
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as exc:
            errors["contact_info.email"] = str(exc)

    if errors:
        missing = sorted({key.split(".")[0] for key in errors})
        raise ValidationError(
            f"Document is not ready for completion; incomplete sections: {', '.join(missing)}",
            details=errors,
        )


def validate_for_status(payload: dict, status: str) -> None:
    """Validate a payload for the status it is about to be stored under."""
    if status == "completed":
        validate_for_completion(payload)
    else:
        validate_shape(payload)
