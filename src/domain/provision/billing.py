"""
Abrechnungs-Datenklassen: Positionen, Summen, Zeitraum, Mitarbeiter und Bericht.

ProvisionSummary ist unveraenderlich. Zwei Summen werden mit add()
kombiniert; jede Addition wird auf Cent gerundet, damit
from_line_items(A + B) == from_line_items(A).add(from_line_items(B)) gilt.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from config.provision_rules import get_category_display_name, round_currency
from domain.provision.errors import ValidationError

logger = logging.getLogger(__name__)


MONTH_NAMES = [
    'Januar', 'Februar', 'Maerz', 'April', 'Mai', 'Juni',
    'Juli', 'August', 'September', 'Oktober', 'November', 'Dezember',
]


# =============================================================================
# Summen
# =============================================================================

@dataclass(frozen=True)
class CategoryTotals:
    count: int = 0
    net: float = 0.0
    provision: float = 0.0

    def add(self, other: 'CategoryTotals') -> 'CategoryTotals':
        return CategoryTotals(
            count=self.count + other.count,
            net=round_currency(self.net + other.net),
            provision=round_currency(self.provision + other.provision),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'count': self.count, 'net': self.net, 'provision': self.provision}


@dataclass(frozen=True)
class ProvisionSummary:
    """Aufsummierte Umsaetze und Provisionen, optional je Kategorie."""
    entry_count: int = 0
    total_net: float = 0.0
    total_vat: float = 0.0
    total_gross: float = 0.0
    total_provision: float = 0.0
    total_provision_vat: float = 0.0
    total_provision_gross: float = 0.0
    category_breakdown: Dict[str, CategoryTotals] = field(default_factory=dict)

    @property
    def total_provision_net(self) -> float:
        return round_currency(self.total_provision_gross - self.total_provision_vat)

    @property
    def is_empty(self) -> bool:
        return self.entry_count == 0

    @property
    def average_provision_per_entry(self) -> float:
        if self.entry_count == 0:
            return 0.0
        return self.total_provision / self.entry_count

    @property
    def effective_provision_rate(self) -> float:
        if self.total_net == 0:
            return 0.0
        return self.total_provision / self.total_net * 100

    def category(self, category_type: str) -> CategoryTotals:
        return self.category_breakdown.get(category_type, CategoryTotals())

    def add(self, other: 'ProvisionSummary') -> 'ProvisionSummary':
        """Assoziative Kombination zweier Summen (Kategorien feldweise)."""
        breakdown = dict(self.category_breakdown)
        for category_type, totals in other.category_breakdown.items():
            breakdown[category_type] = breakdown.get(category_type, CategoryTotals()).add(totals)
        return ProvisionSummary(
            entry_count=self.entry_count + other.entry_count,
            total_net=round_currency(self.total_net + other.total_net),
            total_vat=round_currency(self.total_vat + other.total_vat),
            total_gross=round_currency(self.total_gross + other.total_gross),
            total_provision=round_currency(self.total_provision + other.total_provision),
            total_provision_vat=round_currency(self.total_provision_vat + other.total_provision_vat),
            total_provision_gross=round_currency(self.total_provision_gross + other.total_provision_gross),
            category_breakdown=breakdown,
        )

    def __add__(self, other: 'ProvisionSummary') -> 'ProvisionSummary':
        if not isinstance(other, ProvisionSummary):
            return NotImplemented
        return self.add(other)

    @classmethod
    def from_line_item(cls, item: 'ReportLineItem') -> 'ProvisionSummary':
        category_type = item.category_type or 'other'
        return cls(
            entry_count=1,
            total_net=item.net_amount,
            total_vat=item.vat_amount,
            total_gross=item.gross_amount,
            total_provision=item.provision_amount,
            total_provision_vat=item.provision_vat_amount,
            total_provision_gross=item.provision_gross_amount,
            category_breakdown={
                category_type: CategoryTotals(1, item.net_amount, item.provision_amount),
            },
        )

    @classmethod
    def from_line_items(cls, items: Iterable['ReportLineItem']) -> 'ProvisionSummary':
        summary = cls()
        for item in items:
            summary = summary.add(cls.from_line_item(item))
        return summary

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> 'ProvisionSummary':
        if not d:
            return cls()
        return cls(
            entry_count=int(d.get('entryCount') or 0),
            total_net=float(d.get('totalNet') or 0),
            total_vat=float(d.get('totalVat') or 0),
            total_gross=float(d.get('totalGross') or 0),
            total_provision=float(d.get('totalProvision') or 0),
            total_provision_vat=float(d.get('totalProvisionVat') or 0),
            total_provision_gross=float(d.get('totalProvisionGross') or 0),
            category_breakdown={
                key: CategoryTotals(int(v.get('count') or 0), float(v.get('net') or 0),
                                    float(v.get('provision') or 0))
                for key, v in (d.get('categoryBreakdown') or {}).items()
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entryCount': self.entry_count,
            'totalNet': self.total_net,
            'totalVat': self.total_vat,
            'totalGross': self.total_gross,
            'totalProvision': self.total_provision,
            'totalProvisionVat': self.total_provision_vat,
            'totalProvisionGross': self.total_provision_gross,
            'totalProvisionNet': self.total_provision_net,
            'categoryBreakdown': {k: v.to_dict() for k, v in self.category_breakdown.items()},
        }


# =============================================================================
# Positionen
# =============================================================================

class LineItemSource(str, Enum):
    OWN = 'own'
    HIERARCHY = 'hierarchy'
    TIP_PROVIDER = 'tipProvider'

    @property
    def display_name(self) -> str:
        return {
            LineItemSource.OWN: 'Eigene Umsaetze',
            LineItemSource.HIERARCHY: 'Team-Umsaetze',
            LineItemSource.TIP_PROVIDER: 'Tippgeber-Umsaetze',
        }[self]


@dataclass(frozen=True)
class ReportLineItem:
    """Eine Abrechnungsposition. Betraege werden beim Anlegen auf Cent gerundet."""
    original_entry_id: str
    category_type: str
    net_amount: float
    provision_percentage: float
    provision_amount: float
    source: LineItemSource = LineItemSource.OWN
    entry_date: Optional[date] = None
    customer_name: str = ''
    product_name: str = ''
    provider_name: str = ''
    contract_number: str = ''
    vat_rate: float = 0.0
    vat_amount: float = 0.0
    gross_amount: Optional[float] = None
    provision_vat_rate: float = 0.0
    provision_vat_amount: float = 0.0
    provision_gross_amount: Optional[float] = None
    subordinate_id: Optional[str] = None
    subordinate_name: Optional[str] = None
    status: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'source', LineItemSource(self.source))
        for name in ('net_amount', 'vat_amount', 'provision_amount', 'provision_vat_amount'):
            object.__setattr__(self, name, round_currency(getattr(self, name) or 0))
        gross = self.net_amount + self.vat_amount if self.gross_amount is None else self.gross_amount
        object.__setattr__(self, 'gross_amount', round_currency(gross))
        provision_gross = (
            self.provision_amount + self.provision_vat_amount
            if self.provision_gross_amount is None else self.provision_gross_amount
        )
        object.__setattr__(self, 'provision_gross_amount', round_currency(provision_gross))

    @property
    def provision_net_amount(self) -> float:
        return round_currency(self.provision_gross_amount - self.provision_vat_amount)

    @property
    def category_display_name(self) -> str:
        return get_category_display_name(self.category_type)

    @property
    def date_formatted(self) -> str:
        return self.entry_date.strftime('%d.%m.%Y') if self.entry_date else ''

    @property
    def has_provision_vat(self) -> bool:
        return self.provision_vat_rate > 0 and self.provision_vat_amount > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'originalEntryId': self.original_entry_id,
            'date': self.entry_date.isoformat() if self.entry_date else None,
            'customerName': self.customer_name,
            'categoryType': self.category_type,
            'categoryDisplayName': self.category_display_name,
            'productName': self.product_name,
            'providerName': self.provider_name,
            'contractNumber': self.contract_number,
            'netAmount': self.net_amount,
            'vatRate': self.vat_rate,
            'vatAmount': self.vat_amount,
            'grossAmount': self.gross_amount,
            'provisionPercentage': self.provision_percentage,
            'provisionAmount': self.provision_amount,
            'provisionVatRate': self.provision_vat_rate,
            'provisionVatAmount': self.provision_vat_amount,
            'provisionGrossAmount': self.provision_gross_amount,
            'source': self.source.value,
            'subordinateId': self.subordinate_id,
            'subordinateName': self.subordinate_name,
            'status': self.status,
        }


# =============================================================================
# Zeitraum
# =============================================================================

@dataclass(frozen=True)
class ReportPeriod:
    """Abrechnungszeitraum, Start und Ende inklusive."""
    start_date: date
    end_date: date
    period_type: str = 'custom'

    def __post_init__(self):
        if self.start_date is None or self.end_date is None:
            raise ValidationError("Start- und Enddatum sind erforderlich", 'period')
        if self.end_date < self.start_date:
            raise ValidationError("Enddatum muss nach Startdatum liegen", 'endDate')

    @classmethod
    def for_month(cls, year: int, month: int) -> 'ReportPeriod':
        if not 1 <= month <= 12:
            raise ValidationError(f"Ungueltiger Monat: {month}", 'month')
        last_day = calendar.monthrange(year, month)[1]
        return cls(date(year, month, 1), date(year, month, last_day), 'month')

    @classmethod
    def for_quarter(cls, year: int, quarter: int) -> 'ReportPeriod':
        if not 1 <= quarter <= 4:
            raise ValidationError(f"Ungueltiges Quartal: {quarter}", 'quarter')
        start_month = (quarter - 1) * 3 + 1
        last_day = calendar.monthrange(year, start_month + 2)[1]
        return cls(date(year, start_month, 1), date(year, start_month + 2, last_day), 'quarter')

    @classmethod
    def for_year(cls, year: int) -> 'ReportPeriod':
        return cls(date(year, 1, 1), date(year, 12, 31), 'year')

    @classmethod
    def custom(cls, start_date: date, end_date: date) -> 'ReportPeriod':
        return cls(start_date, end_date, 'custom')

    @classmethod
    def parse_month(cls, text: str) -> 'ReportPeriod':
        """'2025-03' -> Maerz 2025."""
        try:
            year_str, month_str = text.strip().split('-')
            return cls.for_month(int(year_str), int(month_str))
        except ValueError:
            raise ValidationError(f"Monat im Format JJJJ-MM erwartet: {text!r}", 'month')

    def contains_date(self, value: Optional[Any]) -> bool:
        if value is None:
            return False
        if isinstance(value, datetime):
            value = value.date()
        return self.start_date <= value <= self.end_date

    @property
    def display_name(self) -> str:
        if self.period_type == 'month':
            return f"{MONTH_NAMES[self.start_date.month - 1]} {self.start_date.year}"
        if self.period_type == 'quarter':
            return f"Q{(self.start_date.month - 1) // 3 + 1} {self.start_date.year}"
        if self.period_type == 'year':
            return f"Jahr {self.start_date.year}"
        return f"{self.start_date:%d.%m.%Y} - {self.end_date:%d.%m.%Y}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startDate': self.start_date.isoformat(),
            'endDate': self.end_date.isoformat(),
            'type': self.period_type,
            'displayName': self.display_name,
        }


# =============================================================================
# Mitarbeiter und Bericht
# =============================================================================

@dataclass
class EmployeeDetails:
    """Abrechnungsrelevante Stammdaten eines Mitarbeiters."""
    id: str
    name: str
    email: str = ''
    is_small_business: bool = False
    has_direct_payment_gewo: bool = False
    career_level_name: str = ''
    bank_provision_rate: float = 0.0
    insurance_provision_rate: float = 0.0
    real_estate_provision_rate: float = 0.0

    @classmethod
    def from_hierarchy_node(cls, node, **extra) -> 'EmployeeDetails':
        return cls(
            id=node.id,
            name=node.name,
            email=node.email,
            career_level_name=node.career_level.rank_name if node.career_level else '',
            bank_provision_rate=node.bank_provision_rate,
            insurance_provision_rate=node.insurance_provision_rate,
            real_estate_provision_rate=node.real_estate_provision_rate,
            **extra,
        )

    @classmethod
    def from_dict(cls, d: Dict) -> 'EmployeeDetails':
        tax_info = d.get('taxInfo') or {}
        return cls(
            id=str(d.get('id') or d.get('uid') or ''),
            name=d.get('name') or d.get('fullName') or '',
            email=d.get('email') or '',
            is_small_business=bool(d.get('isSmallBusiness', tax_info.get('isSmallBusiness', False))),
            has_direct_payment_gewo=bool(d.get('hasDirectPaymentGewo', False)),
            career_level_name=d.get('careerLevelName') or '',
            bank_provision_rate=float(d.get('bankProvisionRate') or 0),
            insurance_provision_rate=float(d.get('insuranceProvisionRate') or 0),
            real_estate_provision_rate=float(d.get('realEstateProvisionRate') or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'isSmallBusiness': self.is_small_business,
            'hasDirectPaymentGewo': self.has_direct_payment_gewo,
            'careerLevelName': self.career_level_name,
            'bankProvisionRate': self.bank_provision_rate,
            'insuranceProvisionRate': self.insurance_provision_rate,
            'realEstateProvisionRate': self.real_estate_provision_rate,
        }


@dataclass
class BillingReport:
    """Provisionsabrechnung eines Mitarbeiters fuer einen Zeitraum.

    Drei Quellen: eigene Umsaetze, Team-Umsaetze (Differenzprovision),
    Tippgeber-Umsaetze. Die Gesamtsumme ist own + hierarchy + tipProvider.
    excluded_entry_count zaehlt abgelehnte/stornierte Umsaetze,
    direct_payment_entry_count die vom Produktgeber direkt ausgezahlten.
    """
    employee: EmployeeDetails
    period: Optional[ReportPeriod]
    own_line_items: List[ReportLineItem] = field(default_factory=list)
    hierarchy_line_items: List[ReportLineItem] = field(default_factory=list)
    tip_provider_line_items: List[ReportLineItem] = field(default_factory=list)
    excluded_entry_count: int = 0
    direct_payment_entry_count: int = 0
    failed_entry_ids: List[str] = field(default_factory=list)
    generated_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec='seconds'))

    @property
    def own_summary(self) -> ProvisionSummary:
        return ProvisionSummary.from_line_items(self.own_line_items)

    @property
    def hierarchy_summary(self) -> ProvisionSummary:
        return ProvisionSummary.from_line_items(self.hierarchy_line_items)

    @property
    def tip_provider_summary(self) -> ProvisionSummary:
        return ProvisionSummary.from_line_items(self.tip_provider_line_items)

    @property
    def total_summary(self) -> ProvisionSummary:
        return self.own_summary.add(self.hierarchy_summary).add(self.tip_provider_summary)

    @property
    def all_line_items(self) -> List[ReportLineItem]:
        return self.own_line_items + self.hierarchy_line_items + self.tip_provider_line_items

    @property
    def failed_entry_count(self) -> int:
        return len(self.failed_entry_ids)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_entry_ids)

    @property
    def is_empty(self) -> bool:
        return not self.all_line_items

    def failure_notice(self) -> str:
        if not self.failed_entry_ids:
            return ''
        return f"{self.failed_entry_count} Eintraege konnten nicht berechnet werden"

    def summary_by_source(self, source: LineItemSource) -> ProvisionSummary:
        return {
            LineItemSource.OWN: self.own_summary,
            LineItemSource.HIERARCHY: self.hierarchy_summary,
            LineItemSource.TIP_PROVIDER: self.tip_provider_summary,
        }[LineItemSource(source)]

    def line_items_sorted_by_date(self, ascending: bool = True) -> List[ReportLineItem]:
        return sorted(
            self.all_line_items,
            key=lambda item: item.entry_date or date.min,
            reverse=not ascending,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'employee': self.employee.to_dict(),
            'period': self.period.to_dict() if self.period else None,
            'generatedAt': self.generated_at,
            'ownLineItems': [i.to_dict() for i in self.own_line_items],
            'hierarchyLineItems': [i.to_dict() for i in self.hierarchy_line_items],
            'tipProviderLineItems': [i.to_dict() for i in self.tip_provider_line_items],
            'ownSummary': self.own_summary.to_dict(),
            'hierarchySummary': self.hierarchy_summary.to_dict(),
            'tipProviderSummary': self.tip_provider_summary.to_dict(),
            'totalSummary': self.total_summary.to_dict(),
            'excludedEntryCount': self.excluded_entry_count,
            'directPaymentEntryCount': self.direct_payment_entry_count,
            'failedEntryIds': list(self.failed_entry_ids),
        }
