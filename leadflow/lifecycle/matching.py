"""
Lead matcher — finds the existing lead an incoming record refers to.

Priority chain, first exact match wins (no scoring, no fuzzy matching):
  1. normalized WhatsApp/phone
  2. email (exact, non-empty)
  3. (name, origin) pair
  4. nothing → the record is a new lead

Also hosts the read-only duplicate report used by the lead review screen.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from leadflow.config import DEFAULT_COUNTRY_CODE

logger = logging.getLogger('lifecycle.matching')

_NON_DIGITS = re.compile(r'\D')

MIN_PHONE_DIGITS = 8
MIN_CONTAINED_NAME = 5
MIN_NAME_LENGTH = 3


@dataclass
class LeadMatch:
    lead: Any
    matched_on: str     # 'whatsapp' / 'email' / 'name_origin'


@dataclass
class DuplicatePair:
    lead1_id: str
    lead2_id: str
    match_type: str     # 'whatsapp' / 'email' / 'similar_name'
    confidence: str     # 'high' / 'medium'

    def to_dict(self):
        return {
            'lead1_id': self.lead1_id,
            'lead2_id': self.lead2_id,
            'match_type': self.match_type,
            'confidence': self.confidence,
        }


def phone_digits(value) -> str:
    if value is None:
        return ''
    return _NON_DIGITS.sub('', str(value))


def normalize_phone(value) -> str:
    """E.164-style '+<digits>'; national 10/11-digit numbers without '+' get the default country code."""
    digits = phone_digits(value)
    if not digits:
        return ''
    if len(digits) in (10, 11) and not str(value).strip().startswith('+'):
        digits = DEFAULT_COUNTRY_CODE + digits
    return f'+{digits}'


def _text(record: Mapping[str, Any], key: str) -> str:
    value = record.get(key)
    return str(value).strip() if value is not None else ''


def find_existing_lead(store, record: Mapping[str, Any]) -> Optional[LeadMatch]:
    """
    Walk the identity chain against the lead store and return the first hit.

    store must provide find(**criteria) -> Lead or None.
    """
    phone = normalize_phone(record.get('whatsapp'))
    if phone:
        lead = store.find(whatsapp=phone)
        if lead is not None:
            return LeadMatch(lead=lead, matched_on='whatsapp')

    email = _text(record, 'email')
    if email:
        lead = store.find(email=email)
        if lead is not None:
            return LeadMatch(lead=lead, matched_on='email')

    name = _text(record, 'name')
    origin = _text(record, 'origin')
    if name and origin:
        lead = store.find(name=name, origin=origin)
        if lead is not None:
            return LeadMatch(lead=lead, matched_on='name_origin')

    return None


# ── Duplicate report ─────────────────────────────────────────────────────────

def _group_pairs(leads: Sequence, key_fn, match_type: str, seen: set) -> List[DuplicatePair]:
    groups = {}
    for lead in leads:
        key = key_fn(lead)
        if key:
            groups.setdefault(key, []).append(lead)

    pairs = []
    for group in groups.values():
        for first, second in zip(group, group[1:]):
            pair_key = tuple(sorted((first.id, second.id)))
            if pair_key in seen:
                continue
            seen.add(pair_key)
            pairs.append(DuplicatePair(first.id, second.id, match_type, 'high'))
    return pairs


def _phone_key(lead) -> str:
    digits = phone_digits(lead.whatsapp)
    return digits if len(digits) >= MIN_PHONE_DIGITS else ''


def _email_key(lead) -> str:
    email = (lead.email or '').strip().lower()
    return email if email and email != 'n/a' else ''


def _names_similar(a: str, b: str) -> Optional[str]:
    if len(a) < MIN_NAME_LENGTH or len(b) < MIN_NAME_LENGTH:
        return None
    if a == b:
        return 'high'
    if (b in a and len(b) >= MIN_CONTAINED_NAME) or (a in b and len(a) >= MIN_CONTAINED_NAME):
        return 'medium'
    return None


def find_duplicate_pairs(leads: Sequence) -> List[DuplicatePair]:
    """
    Report likely duplicates among existing leads (expects oldest first).

    Same phone or same email → high confidence. Equal names → high, one name
    containing the other → medium. Each pair is reported once, under the
    first signal that found it.
    """
    seen = set()
    pairs = _group_pairs(leads, _phone_key, 'whatsapp', seen)
    pairs += _group_pairs(leads, _email_key, 'email', seen)

    names = [((lead.name or '').strip().lower(), lead) for lead in leads]
    for i, (name_a, lead_a) in enumerate(names):
        for name_b, lead_b in names[i + 1:]:
            pair_key = tuple(sorted((lead_a.id, lead_b.id)))
            if pair_key in seen:
                continue
            confidence = _names_similar(name_a, name_b)
            if confidence:
                seen.add(pair_key)
                pairs.append(DuplicatePair(lead_a.id, lead_b.id, 'similar_name', confidence))

    logger.info("Duplicate scan: %d leads, %d pairs", len(leads), len(pairs))
    return pairs
