"""
Ergebnis einer Provisions-Kaskade: geordnete Teilnehmer mit Satz und Betrag.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from config.provision_rules import CURRENCY_TOLERANCE, RATE_TOLERANCE, round_currency, round_rate


class ParticipantRole(str, Enum):
    """Geschlossene Menge der Rollen in einer Kaskade."""
    OWNER = 'owner'
    TIP_PROVIDER = 'tipProvider'
    MANAGER = 'manager'
    COMPANY = 'company'

    @property
    def display_name(self) -> str:
        return {
            ParticipantRole.OWNER: 'Berater',
            ParticipantRole.TIP_PROVIDER: 'Tippgeber',
            ParticipantRole.MANAGER: 'Fuehrungskraft',
            ParticipantRole.COMPANY: 'Unternehmen',
        }[self]


@dataclass(frozen=True)
class Participant:
    node_id: str
    name: str
    role: ParticipantRole
    rate_percentage: float
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodeId': self.node_id,
            'name': self.name,
            'role': self.role.value,
            'ratePercentage': self.rate_percentage,
            'amount': self.amount,
        }


@dataclass(frozen=True)
class ProvisionCascade:
    """Teilnehmer in Reihenfolge Erfasser -> Tippgeber -> Vorgesetzte -> Unternehmen."""
    entry_id: str
    category_type: str
    provision_amount: float
    base_rate: float
    participants: List[Participant] = field(default_factory=list)
    overallocation: float = 0.0

    @property
    def is_overallocated(self) -> bool:
        return self.overallocation > 0

    @property
    def owner(self) -> Optional[Participant]:
        return next((p for p in self.participants if p.role is ParticipantRole.OWNER), None)

    @property
    def company(self) -> Optional[Participant]:
        return next((p for p in self.participants if p.role is ParticipantRole.COMPANY), None)

    @property
    def managers(self) -> List[Participant]:
        return [p for p in self.participants if p.role is ParticipantRole.MANAGER]

    @property
    def tip_providers(self) -> List[Participant]:
        return [p for p in self.participants if p.role is ParticipantRole.TIP_PROVIDER]

    @property
    def total_amount(self) -> float:
        return round_currency(sum(p.amount for p in self.participants))

    @property
    def total_rate(self) -> float:
        return round_rate(sum(p.rate_percentage for p in self.participants))

    def is_balanced(self) -> bool:
        """Summe der Betraege == Umsatz und Summe der Saetze == 100 (mit Toleranz)."""
        if self.is_overallocated:
            return False
        return (
            abs(self.total_amount - self.provision_amount) <= CURRENCY_TOLERANCE
            and abs(self.total_rate - 100.0) <= RATE_TOLERANCE
        )

    def amount_for(self, node_id: str) -> float:
        """Summierter Betrag eines Teilnehmers (0.0 wenn nicht beteiligt)."""
        return round_currency(sum(p.amount for p in self.participants if p.node_id == node_id))

    def for_display(self) -> List[Participant]:
        """Umgekehrte Reihenfolge fuer die Anzeige (Unternehmen oben)."""
        return list(reversed(self.participants))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entryId': self.entry_id,
            'categoryType': self.category_type,
            'provisionAmount': self.provision_amount,
            'baseRate': self.base_rate,
            'overallocation': self.overallocation,
            'participants': [p.to_dict() for p in self.participants],
        }
