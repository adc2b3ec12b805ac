"""Tests for leadflow.lifecycle.matching — identity chain and duplicate report."""
from types import SimpleNamespace

import pytest

from leadflow.lifecycle.matching import (
    find_duplicate_pairs,
    find_existing_lead,
    normalize_phone,
)


class FakeLeadStore:
    """In-memory store: find() returns the first lead whose attributes equal every criterion."""

    def __init__(self, leads):
        self.leads = leads
        self.calls = []

    def find(self, **criteria):
        self.calls.append(criteria)
        for lead in self.leads:
            if all(getattr(lead, k) == v for k, v in criteria.items()):
                return lead
        return None


def _lead(id, name='', whatsapp='', email='', origin='Other'):
    return SimpleNamespace(id=id, name=name, whatsapp=whatsapp, email=email, origin=origin)


# ── normalize_phone ──────────────────────────────────────────────────────────

class TestNormalizePhone:

    @pytest.mark.parametrize('raw, expected', [
        ('(11) 98765-4321', '+5511987654321'),
        ('11 3456-7890', '+551134567890'),
        ('+55 11 98765-4321', '+5511987654321'),
        ('+1 415 555 0100', '+14155550100'),
        ('', ''),
        (None, ''),
        ('n/a', ''),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected


# ── find_existing_lead ───────────────────────────────────────────────────────

class TestFindExistingLead:

    def test_phone_match_wins_over_name_origin(self):
        by_phone = _lead('L1', name='Someone Else', whatsapp='+5511987654321')
        by_name = _lead('L2', name='Ana', origin='Instagram')
        store = FakeLeadStore([by_name, by_phone])

        match = find_existing_lead(store, {
            'name': 'Ana', 'origin': 'Instagram', 'whatsapp': '(11) 98765-4321',
        })
        assert match.lead is by_phone
        assert match.matched_on == 'whatsapp'

    def test_short_circuits_after_first_hit(self):
        store = FakeLeadStore([_lead('L1', whatsapp='+5511987654321')])
        find_existing_lead(store, {'whatsapp': '11987654321', 'email': 'a@b.com', 'name': 'A', 'origin': 'X'})
        assert store.calls == [{'whatsapp': '+5511987654321'}]

    def test_falls_back_to_email(self):
        lead = _lead('L1', email='ana@example.com')
        store = FakeLeadStore([lead])
        match = find_existing_lead(store, {'whatsapp': '11 90000-0000', 'email': ' ana@example.com '})
        assert match.lead is lead
        assert match.matched_on == 'email'

    def test_email_is_case_sensitive(self):
        store = FakeLeadStore([_lead('L1', email='ana@example.com')])
        assert find_existing_lead(store, {'email': 'ANA@example.com'}) is None

    def test_falls_back_to_name_and_origin(self):
        lead = _lead('L1', name='Ana', origin='Instagram')
        store = FakeLeadStore([lead])
        match = find_existing_lead(store, {'name': 'Ana', 'origin': 'Instagram', 'email': 'new@x.com'})
        assert match.lead is lead
        assert match.matched_on == 'name_origin'

    def test_name_without_origin_is_not_matched(self):
        store = FakeLeadStore([_lead('L1', name='Ana', origin='Instagram')])
        assert find_existing_lead(store, {'name': 'Ana'}) is None
        assert store.calls == []

    def test_no_match_means_new(self):
        store = FakeLeadStore([_lead('L1', name='Bruno', whatsapp='+5511900000000')])
        assert find_existing_lead(store, {'name': 'Ana', 'whatsapp': '11911111111', 'origin': 'Other'}) is None


# ── find_duplicate_pairs ─────────────────────────────────────────────────────

class TestFindDuplicatePairs:

    def test_same_phone_high_confidence(self):
        leads = [
            _lead('a', name='Ana', whatsapp='+55 11 98765-4321'),
            _lead('b', name='Bruno', whatsapp='5511987654321'),
        ]
        pairs = find_duplicate_pairs(leads)
        assert len(pairs) == 1
        assert pairs[0].match_type == 'whatsapp'
        assert pairs[0].confidence == 'high'

    def test_short_phone_ignored(self):
        leads = [_lead('a', name='Ana', whatsapp='1234'), _lead('b', name='Bruno', whatsapp='1234')]
        assert find_duplicate_pairs(leads) == []

    def test_email_is_case_insensitive_here(self):
        leads = [_lead('a', name='Ana', email='Ana@X.com'), _lead('b', name='Bruno', email=' ana@x.com')]
        pairs = find_duplicate_pairs(leads)
        assert [(p.lead1_id, p.lead2_id, p.match_type) for p in pairs] == [('a', 'b', 'email')]

    def test_na_email_ignored(self):
        leads = [_lead('a', name='Ana', email='N/A'), _lead('b', name='Bruno', email='n/a')]
        assert find_duplicate_pairs(leads) == []

    def test_equal_names_high(self):
        leads = [_lead('a', name='Carla Dias'), _lead('b', name='carla dias')]
        pairs = find_duplicate_pairs(leads)
        assert pairs[0].match_type == 'similar_name'
        assert pairs[0].confidence == 'high'

    def test_contained_name_medium(self):
        leads = [_lead('a', name='Carla Dias Ferreira'), _lead('b', name='Carla Dias')]
        pairs = find_duplicate_pairs(leads)
        assert pairs[0].confidence == 'medium'

    def test_short_contained_name_ignored(self):
        leads = [_lead('a', name='Ana Paula'), _lead('b', name='Ana')]
        assert find_duplicate_pairs(leads) == []

    def test_pair_reported_once(self):
        leads = [
            _lead('a', name='Ana Souza', whatsapp='+5511987654321', email='ana@x.com'),
            _lead('b', name='Ana Souza', whatsapp='+5511987654321', email='ana@x.com'),
        ]
        pairs = find_duplicate_pairs(leads)
        assert len(pairs) == 1
        assert pairs[0].match_type == 'whatsapp'

    def test_group_yields_consecutive_pairs(self):
        leads = [_lead(i, name=f'Lead {i}', whatsapp='+5511987654321') for i in ('a', 'b', 'c')]
        pairs = find_duplicate_pairs(leads)
        assert [(p.lead1_id, p.lead2_id) for p in pairs] == [('a', 'b'), ('b', 'c')]

    def test_to_dict(self):
        leads = [_lead('a', name='Carla Dias'), _lead('b', name='Carla Dias')]
        assert find_duplicate_pairs(leads)[0].to_dict() == {
            'lead1_id': 'a', 'lead2_id': 'b', 'match_type': 'similar_name', 'confidence': 'high',
        }
