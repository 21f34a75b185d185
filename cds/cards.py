"""
CDS Hooks card model.

Cards are the advisory messages a CDS service returns to the EHR. They are
built fresh for every request and never change after construction; the
wire form is produced by to_dict().

Wire shape (CDS Hooks 1.0):
  {summary, detail?, indicator, source: {label, url},
   suggestions?: [{label, actions: [...]}],
   links?: [{label, url, type}]}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

INDICATORS = ('info', 'warning', 'critical')


@dataclass(frozen=True)
class Source:
    """Where the card came from, shown to the clinician."""
    label: str
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'label': self.label}
        if self.url:
            result['url'] = self.url
        return result


@dataclass(frozen=True)
class Link:
    label: str
    url: str
    type: str = 'absolute'

    def to_dict(self) -> Dict[str, Any]:
        return {'label': self.label, 'url': self.url, 'type': self.type}


@dataclass(frozen=True)
class Suggestion:
    """A one-click change the EHR can apply, e.g. replacing a draft order."""
    label: str
    actions: Tuple[Dict[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {'label': self.label, 'actions': [dict(a) for a in self.actions]}


@dataclass(frozen=True)
class Card:
    summary: str
    indicator: str
    source: Source
    detail: Optional[str] = None
    suggestions: Tuple[Suggestion, ...] = field(default_factory=tuple)
    links: Tuple[Link, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.indicator not in INDICATORS:
            raise ValueError(f'Invalid card indicator: {self.indicator!r}')
        if self.source is None:
            raise ValueError('Card source is required')
        # Accept lists from callers but store tuples
        object.__setattr__(self, 'suggestions', tuple(self.suggestions))
        object.__setattr__(self, 'links', tuple(self.links))

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'summary': self.summary,
            'indicator': self.indicator,
            'source': self.source.to_dict(),
        }
        if self.detail:
            result['detail'] = self.detail
        if self.suggestions:
            result['suggestions'] = [s.to_dict() for s in self.suggestions]
        if self.links:
            result['links'] = [l.to_dict() for l in self.links]
        return result


def cards_response(cards: List[Card]) -> Dict[str, Any]:
    """Wrap cards in the response envelope. Always has a 'cards' list."""
    return {'cards': [card.to_dict() for card in cards or []]}
