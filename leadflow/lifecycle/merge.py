"""
Field-level merge of an incoming record into an existing lead.

The rule set is a declarative table, FIELD_POLICIES, consumed by one generic
merge function:

  always_overwrite            incoming replaces existing whenever present
  overwrite_if_non_empty      only non-blank text replaces existing
  overwrite_if_positive       only a valid number > 0 replaces existing
  overwrite_if_defined        any explicit value (including False) replaces

Enum fields follow overwrite_if_non_empty after coercion to their permitted
values. Tags and pipeline subscriptions are additive and handled by the
importer, never here.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from leadflow.config import ENUM_FIELDS, SCORE_MIN, SCORE_MAX, SCORE_CLASSIFICATION
from leadflow.lifecycle.matching import normalize_phone

logger = logging.getLogger('lifecycle.merge')

ALWAYS = 'always_overwrite'
IF_NON_EMPTY = 'overwrite_if_non_empty'
IF_POSITIVE = 'overwrite_if_positive'
IF_DEFINED = 'overwrite_if_defined'

FIELD_POLICIES: Dict[str, str] = {
    # Scores are business policy: the latest import wins.
    'lead_score':                ALWAYS,
    'lead_value':                ALWAYS,
    'score_classification':      ALWAYS,
    # Text
    'name':                      IF_NON_EMPTY,
    'email':                     IF_NON_EMPTY,
    'whatsapp':                  IF_NON_EMPTY,
    'segment':                   IF_NON_EMPTY,
    'closer':                    IF_NON_EMPTY,
    'session_goal':              IF_NON_EMPTY,
    'objection_notes':           IF_NON_EMPTY,
    'notes':                     IF_NON_EMPTY,
    'last_session_result':       IF_NON_EMPTY,
    'last_session_result_notes': IF_NON_EMPTY,
    # Enums (coerced first)
    'origin':                    IF_NON_EMPTY,
    'status':                    IF_NON_EMPTY,
    'main_objection':            IF_NON_EMPTY,
    # Numbers
    'followers':                 IF_POSITIVE,
    'avg_revenue':               IF_POSITIVE,
    'revenue_goal':              IF_POSITIVE,
    # Booleans
    'has_sold_online':           IF_DEFINED,
}

SCORE_FIELDS = ('lead_score', 'lead_value')
INTEGER_FIELDS = ('followers',)
BOOLEAN_FIELDS = ('has_sold_online',)

_TRUE_STRINGS = {'true', '1', 'yes', 'y', 'sim', 's', 'x'}
_FALSE_STRINGS = {'false', '0', 'no', 'n', 'nao', 'não'}


@dataclass(frozen=True)
class EnumCoercion:
    """Result of validating an enum value: either kept as-is or coerced to the fallback."""
    value: Optional[str]
    coerced: bool
    original: Any = None


@dataclass
class PreparedRecord:
    data: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)


# ── Scalar helpers ───────────────────────────────────────────────────────────

def _to_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip().replace(',', '.')) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def clamp_score(value) -> int:
    """Clamp a score to [0, 110]; anything non-numeric maps to 0."""
    number = _to_number(value)
    if number is None:
        return SCORE_MIN
    return int(max(SCORE_MIN, min(SCORE_MAX, round(number))))


def classify_score(score) -> str:
    """High (>= 60), Medium (30-59) or Low (< 30)."""
    value = clamp_score(score)
    for floor, label in SCORE_CLASSIFICATION:
        if value >= floor:
            return label
    return SCORE_CLASSIFICATION[-1][1]


def parse_bool(value) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def coerce_enum(field_name: str, value) -> EnumCoercion:
    """Match value against the field's permitted values (case-insensitive)."""
    permitted, fallback = ENUM_FIELDS[field_name]
    if value is None or str(value).strip() == '':
        return EnumCoercion(value=None, coerced=False, original=value)
    text = str(value).strip()
    for option in permitted:
        if option.lower() == text.lower():
            return EnumCoercion(value=option, coerced=False, original=value)
    return EnumCoercion(value=fallback, coerced=True, original=value)


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ''


# ── Merge ────────────────────────────────────────────────────────────────────

def _apply_policy(policy: str, field_name: str, current, incoming):
    """Return (should_write, value)."""
    if policy == ALWAYS:
        if incoming is None:
            return False, current
        if field_name in SCORE_FIELDS:
            return True, clamp_score(incoming)
        return True, incoming

    if policy == IF_NON_EMPTY:
        if _is_blank(incoming):
            return False, current
        if field_name in ENUM_FIELDS:
            return True, coerce_enum(field_name, incoming).value
        return True, incoming.strip() if isinstance(incoming, str) else incoming

    if policy == IF_POSITIVE:
        number = _to_number(incoming)
        if number is None or number <= 0:
            return False, current
        return True, int(number) if field_name in INTEGER_FIELDS else number

    if policy == IF_DEFINED:
        if incoming is None:
            return False, current
        parsed = parse_bool(incoming) if field_name in BOOLEAN_FIELDS else incoming
        if parsed is None:
            return False, current
        return True, parsed

    raise ValueError(f"Unknown merge policy '{policy}' for field '{field_name}'")


def merge_lead_data(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge incoming into a copy of existing, field by field, per FIELD_POLICIES."""
    merged = dict(existing)
    for field_name, policy in FIELD_POLICIES.items():
        if field_name not in incoming:
            continue
        write, value = _apply_policy(policy, field_name, merged.get(field_name), incoming[field_name])
        if write:
            merged[field_name] = value
    return merged


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Audit change set: [{field, from, to}] for every merge-managed field that differs."""
    changes = []
    for field_name in FIELD_POLICIES:
        if before.get(field_name) != after.get(field_name):
            changes.append({'field': field_name, 'from': before.get(field_name), 'to': after.get(field_name)})
    return changes


# ── Incoming record preparation ─────────────────────────────────────────────

def prepare_incoming(record: Mapping[str, Any]) -> PreparedRecord:
    """
    Normalize a raw import row before matching/merging.

    Phone is normalized, scores clamped and classified, enums coerced (each
    coercion is reported as a warning), booleans parsed, text trimmed.
    Unknown keys are dropped.
    """
    data: Dict[str, Any] = {}
    warnings: List[str] = []

    for key, value in record.items():
        if key not in FIELD_POLICIES:
            logger.debug("Dropping unmapped field '%s'", key)
            continue
        if isinstance(value, str):
            value = value.strip()
        if FIELD_POLICIES[key] == ALWAYS and _is_blank(value):
            # A blank cell is absent, not an explicit zero.
            continue
        data[key] = value

    if not _is_blank(data.get('whatsapp')):
        data['whatsapp'] = normalize_phone(data['whatsapp'])

    for score_field in SCORE_FIELDS:
        if score_field in data and data[score_field] is not None:
            raw = data[score_field]
            data[score_field] = clamp_score(raw)
            if _to_number(raw) is None:
                warnings.append(f"{score_field}: invalid value '{raw}' stored as 0")
            elif data[score_field] != _to_number(raw):
                warnings.append(f"{score_field}: {raw} clamped to {data[score_field]}")

    if data.get('lead_score') is not None:
        data['score_classification'] = classify_score(data['lead_score'])

    for enum_field in ENUM_FIELDS:
        if enum_field in data:
            result = coerce_enum(enum_field, data[enum_field])
            data[enum_field] = result.value
            if result.coerced:
                warnings.append(f"{enum_field}: '{result.original}' is not a permitted value, using '{result.value}'")

    for bool_field in BOOLEAN_FIELDS:
        if bool_field in data:
            if _is_blank(data[bool_field]):
                data[bool_field] = None
                continue
            parsed = parse_bool(data[bool_field])
            if parsed is None:
                warnings.append(f"{bool_field}: could not read '{data[bool_field]}' as yes/no")
            data[bool_field] = parsed

    return PreparedRecord(data=data, warnings=warnings)
