"""
Tests for the card model and service catalog.
"""

import dataclasses
import pytest

from cds.cards import Card, Link, Source, Suggestion, cards_response
from cds.catalog import ServiceDescriptor, get_services, get_service, _index_services


SOURCE = Source('CDS Service Tutorial', 'https://example.org/wiki')


class TestCard:

    def test_minimal_wire_shape(self):
        card = Card(summary='Hello', indicator='info', source=SOURCE)
        assert card.to_dict() == {
            'summary': 'Hello',
            'indicator': 'info',
            'source': {'label': 'CDS Service Tutorial', 'url': 'https://example.org/wiki'},
        }

    def test_links_and_suggestions(self):
        card = Card(
            summary='Switch',
            indicator='warning',
            source=SOURCE,
            links=[Link('Docs', 'http://cds-hooks.org')],
            suggestions=[Suggestion('Do it', ({'type': 'create', 'description': 'x'},))],
        )
        data = card.to_dict()
        assert data['links'] == [{'label': 'Docs', 'url': 'http://cds-hooks.org', 'type': 'absolute'}]
        assert data['suggestions'] == [{'label': 'Do it', 'actions': [{'type': 'create', 'description': 'x'}]}]
        assert isinstance(card.links, tuple)

    def test_invalid_indicator_rejected(self):
        with pytest.raises(ValueError):
            Card(summary='x', indicator='hard-stop', source=SOURCE)

    def test_source_required(self):
        with pytest.raises(ValueError):
            Card(summary='x', indicator='info', source=None)

    def test_immutable(self):
        card = Card(summary='x', indicator='critical', source=SOURCE)
        with pytest.raises(dataclasses.FrozenInstanceError):
            card.summary = 'y'

    def test_empty_response(self):
        assert cards_response([]) == {'cards': []}


class TestCatalog:

    def test_services_in_order(self):
        assert [s.id for s in get_services()] == [
            'patient-view-example', 'patient-view-hypertension', 'order-select-example',
        ]

    def test_get_service(self):
        assert get_service('order-select-example').hook == 'order-select'
        assert get_service('nope') is None

    def test_duplicate_ids_rejected(self):
        svc = ServiceDescriptor('dup', 'patient-view', 'T', 'D')
        with pytest.raises(ValueError):
            _index_services([svc, svc])
