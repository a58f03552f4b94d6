"""
Umsatz-Eintraege (RevenueEntry) mit Tippgebern, USt und Provisions-Snapshot.

Ein Snapshot besteht aus drei Teilen, die nur gemeinsam gesetzt werden:
- owner_provision_snapshot (Satz des Erfassers)
- manager_provision_snapshot (Satz des direkten Vorgesetzten, None ohne Vorgesetzten)
- hierarchy_snapshot (IDs/Namen und Erfassungszeitpunkt)
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from config.provision_rules import (
    DEFAULT_VAT_RATE, get_category_display_name, get_status_display_name, round_currency,
)
from domain.provision.errors import (
    InvalidStatusTransitionError, SnapshotInconsistencyError, ValidationError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Kategorie und Status
# =============================================================================

class RevenueCategory(str, Enum):
    """Bekannte Umsatz-Kategorien. Weitere Kategorien sind als str erlaubt."""
    BANK = 'bank'
    INSURANCE = 'insurance'
    REAL_ESTATE = 'realEstate'
    PROPERTY_MANAGEMENT = 'propertyManagement'
    ENERGY_CONTRACTS = 'energyContracts'

    @property
    def display_name(self) -> str:
        return get_category_display_name(self.value)


class RevenueStatus(str, Enum):
    SUBMITTED = 'submitted'
    PROVISIONED = 'provisioned'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'

    @classmethod
    def from_code(cls, code: Any) -> 'RevenueStatus':
        if isinstance(code, RevenueStatus):
            return code
        if isinstance(code, dict):
            code = code.get('type')
        try:
            return cls(str(code or cls.SUBMITTED.value).strip().lower())
        except ValueError:
            raise ValidationError(f"Ungueltiger Status: {code!r}", 'status')

    @property
    def display_name(self) -> str:
        return get_status_display_name(self.value)

    @property
    def is_terminal(self) -> bool:
        return self is not RevenueStatus.SUBMITTED

    @property
    def is_excluded_from_calculations(self) -> bool:
        return self in (RevenueStatus.REJECTED, RevenueStatus.CANCELLED)

    def can_transition_to(self, target: 'RevenueStatus') -> bool:
        return target in STATUS_TRANSITIONS.get(self, ())


STATUS_TRANSITIONS = {
    RevenueStatus.SUBMITTED: (
        RevenueStatus.PROVISIONED, RevenueStatus.REJECTED, RevenueStatus.CANCELLED,
    ),
    RevenueStatus.PROVISIONED: (),
    RevenueStatus.REJECTED: (),
    RevenueStatus.CANCELLED: (),
}


def _category_code(value: Any) -> str:
    if isinstance(value, RevenueCategory):
        return value.value
    if isinstance(value, dict):
        value = value.get('type')
    code = str(value or '').strip()
    if not code:
        raise ValidationError("Kategorie darf nicht leer sein", 'category')
    return code


def _parse_date(value: Any) -> Optional[date]:
    """ISO-Datum/-Zeitstempel oder date; ungueltige Werte ergeben None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, '%d.%m.%Y').date()
    except ValueError:
        logger.debug(f"Datum nicht lesbar: {value!r}")
        return None


def _to_float(value: Any, field_name: str) -> float:
    if value is None or value == '':
        return 0.0
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} muss eine Zahl sein", field_name)
    try:
        if isinstance(value, str):
            return float(value.replace(',', '.'))
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} muss eine Zahl sein: {value!r}", field_name)


# =============================================================================
# Tippgeber
# =============================================================================

@dataclass(frozen=True)
class TipProviderAllocation:
    """Externer Tippgeber mit pauschalem Prozentanteil am Umsatz."""
    id: str
    name: str
    provision_percentage: float

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Tippgeber-ID darf nicht leer sein", 'tipProviderId')
        percentage = _to_float(self.provision_percentage, 'provisionPercentage')
        if percentage < 0 or percentage > 100:
            raise ValidationError(
                f"Tippgeber-Anteil {percentage} liegt nicht in [0, 100]", 'provisionPercentage'
            )
        object.__setattr__(self, 'provision_percentage', percentage)

    def calculate_amount(self, base_amount: float) -> float:
        return round_currency(base_amount * self.provision_percentage / 100)

    @classmethod
    def from_dict(cls, d: Dict) -> 'TipProviderAllocation':
        tp_id = d.get('id') or d.get('tipProviderId') or ''
        return cls(
            id=str(tp_id),
            name=d.get('name') or d.get('tipProviderName') or str(tp_id),
            provision_percentage=d.get('provisionPercentage', d.get('provision_percentage', 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'provisionPercentage': self.provision_percentage}


# =============================================================================
# Snapshot
# =============================================================================

@dataclass(frozen=True)
class HierarchySnapshot:
    """Identitaeten von Erfasser und direktem Vorgesetzten zum Erfassungszeitpunkt."""
    owner_id: str
    owner_name: str
    manager_id: Optional[str] = None
    manager_name: Optional[str] = None
    captured_at: str = ''
    migrated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> Optional['HierarchySnapshot']:
        if not d:
            return None
        if not isinstance(d, dict):
            raise ValidationError("hierarchySnapshot muss ein Objekt sein", 'hierarchySnapshot')
        return cls(
            owner_id=d.get('ownerId') or d.get('owner_id') or '',
            owner_name=d.get('ownerName') or d.get('owner_name') or '',
            manager_id=d.get('managerId') or d.get('manager_id'),
            manager_name=d.get('managerName') or d.get('manager_name'),
            captured_at=d.get('capturedAt') or d.get('captured_at') or '',
            migrated_at=d.get('migratedAt') or d.get('migrated_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'ownerId': self.owner_id,
            'ownerName': self.owner_name,
            'managerId': self.manager_id,
            'managerName': self.manager_name,
            'capturedAt': self.captured_at,
        }
        if self.migrated_at:
            result['migratedAt'] = self.migrated_at
        return result


@dataclass(frozen=True)
class ProvisionSnapshot:
    """Die drei Snapshot-Felder als Einheit."""
    owner_rate: float
    manager_rate: Optional[float]
    hierarchy: HierarchySnapshot


# =============================================================================
# RevenueEntry
# =============================================================================

@dataclass
class RevenueEntry:
    """Ein erfasster Umsatz.

    provision_amount ist die Basis aller Provisionsanteile (netto).
    USt-Felder sind rein informativ und gehen nicht in die Kaskade ein.
    """
    id: str
    employee_id: str
    category_type: str
    provision_amount: float
    status: RevenueStatus = RevenueStatus.SUBMITTED
    tip_providers: List[TipProviderAllocation] = field(default_factory=list)
    has_vat: bool = False
    vat_rate: float = DEFAULT_VAT_RATE
    entry_date: Optional[date] = None
    customer_name: str = ''
    customer_number: str = ''
    product_name: str = ''
    provider_name: str = ''
    contract_number: str = ''
    notes: str = ''
    source: Optional[str] = None
    source_reference: Optional[str] = None
    manual_billing: bool = False
    owner_provision_snapshot: Optional[float] = None
    manager_provision_snapshot: Optional[float] = None
    hierarchy_snapshot: Optional[HierarchySnapshot] = None

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Umsatz-ID darf nicht leer sein", 'id')
        if not self.employee_id:
            raise ValidationError("Umsatz ohne Erfasser (employeeId)", 'employeeId')
        self.category_type = _category_code(self.category_type)
        self.status = RevenueStatus.from_code(self.status)
        self.provision_amount = _to_float(self.provision_amount, 'provisionAmount')
        self.vat_rate = self._validate_vat_rate(self.vat_rate)
        self.entry_date = _parse_date(self.entry_date)
        self._validate_tip_providers()

    def _validate_vat_rate(self, rate: Any) -> float:
        if rate is None or rate == '':
            return DEFAULT_VAT_RATE
        value = _to_float(rate, 'vatRate')
        if value < 0 or value > 100:
            raise ValidationError("USt-Satz muss zwischen 0 und 100 liegen", 'vatRate')
        return value

    def _validate_tip_providers(self) -> None:
        seen = set()
        for tp in self.tip_providers:
            if tp.id == self.employee_id:
                raise ValidationError("Tippgeber darf nicht der Erfasser selbst sein", 'tipProviderId')
            if tp.id in seen:
                raise ValidationError(f"Tippgeber doppelt zugeordnet: {tp.id}", 'tipProviders')
            seen.add(tp.id)
        total = self.total_tip_provider_percentage
        if total > 100:
            raise ValidationError(f"Summe der Tippgeber-Anteile ({total}%) ueber 100%", 'tipProviders')

    # -------------------------------------------------------------------------
    # Tippgeber
    # -------------------------------------------------------------------------

    @property
    def has_tip_provider(self) -> bool:
        return len(self.tip_providers) > 0

    @property
    def tip_provider_ids(self) -> List[str]:
        return [tp.id for tp in self.tip_providers]

    @property
    def total_tip_provider_percentage(self) -> float:
        return sum(tp.provision_percentage for tp in self.tip_providers)

    @property
    def tip_provider_amount(self) -> float:
        return round_currency(sum(tp.calculate_amount(self.provision_amount) for tp in self.tip_providers))

    @property
    def owner_provision_after_tip_provider(self) -> float:
        """Snapshot-Satz des Erfassers abzueglich Tippgeber (0 ohne Snapshot)."""
        if self.owner_provision_snapshot is None:
            return 0.0
        return max(0.0, self.owner_provision_snapshot - self.total_tip_provider_percentage)

    # -------------------------------------------------------------------------
    # USt (informativ)
    # -------------------------------------------------------------------------

    @property
    def net_amount(self) -> float:
        return self.provision_amount

    @property
    def vat_amount(self) -> float:
        if not self.has_vat:
            return 0.0
        return round_currency(self.provision_amount * self.vat_rate / 100)

    @property
    def gross_amount(self) -> float:
        if not self.has_vat:
            return self.provision_amount
        return round_currency(self.provision_amount + self.vat_amount)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def is_excluded_from_calculations(self) -> bool:
        return self.status.is_excluded_from_calculations

    @property
    def is_imported(self) -> bool:
        return self.source is not None

    def transition_to(self, target: Any) -> None:
        target_status = RevenueStatus.from_code(target)
        if not self.status.can_transition_to(target_status):
            raise InvalidStatusTransitionError(self.status.value, target_status.value)
        logger.info(f"Umsatz {self.id}: Status {self.status.value} -> {target_status.value}")
        self.status = target_status

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    @property
    def has_provision_snapshot(self) -> bool:
        """True nur bei vollstaendigem Snapshot (alle drei Teile konsistent)."""
        try:
            return self.snapshot_consistency()
        except SnapshotInconsistencyError:
            return False

    def snapshot_consistency(self) -> bool:
        """True = vollstaendig, False = kein Snapshot.

        Raises:
            SnapshotInconsistencyError: nur Teile des Snapshots vorhanden
        """
        owner_set = self.owner_provision_snapshot is not None
        hierarchy_set = self.hierarchy_snapshot is not None
        manager_set = self.manager_provision_snapshot is not None
        if not owner_set and not hierarchy_set and not manager_set:
            return False
        if not owner_set:
            raise SnapshotInconsistencyError(self.id, "ownerProvisionSnapshot fehlt")
        if not hierarchy_set:
            raise SnapshotInconsistencyError(self.id, "hierarchySnapshot fehlt")
        has_manager = self.hierarchy_snapshot.manager_id is not None
        if has_manager and not manager_set:
            raise SnapshotInconsistencyError(self.id, "managerProvisionSnapshot fehlt")
        if manager_set and not has_manager:
            raise SnapshotInconsistencyError(self.id, "managerProvisionSnapshot ohne Vorgesetzten")
        return True

    @property
    def provision_snapshot(self) -> Optional[ProvisionSnapshot]:
        if not self.has_provision_snapshot:
            return None
        return ProvisionSnapshot(
            owner_rate=self.owner_provision_snapshot,
            manager_rate=self.manager_provision_snapshot,
            hierarchy=self.hierarchy_snapshot,
        )

    def apply_snapshot(self, snapshot: ProvisionSnapshot) -> None:
        """Setzt alle Snapshot-Felder gemeinsam. Ein vorhandener Snapshot bleibt unveraendert."""
        if self.has_provision_snapshot:
            logger.debug(f"Umsatz {self.id} hat bereits einen Snapshot, keine Aenderung")
            return
        self.owner_provision_snapshot = snapshot.owner_rate
        self.manager_provision_snapshot = snapshot.manager_rate
        self.hierarchy_snapshot = snapshot.hierarchy

    # -------------------------------------------------------------------------
    # Serialisierung
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, d: Dict) -> 'RevenueEntry':
        """Aus gespeichertem Datensatz (manuell erfasst oder WIFO-Import).

        Raises:
            ValidationError: Datensatz oder Tippgeber-Liste hat die falsche Form
        """
        if not isinstance(d, dict):
            raise ValidationError(f"Umsatz muss ein Objekt sein, nicht {type(d).__name__}", 'revenue')
        raw_tips = d.get('tipProviders') or []
        if not isinstance(raw_tips, list):
            raise ValidationError("Tippgeber muessen als Liste angegeben werden", 'tipProviders')
        for tp in raw_tips:
            if not isinstance(tp, (dict, TipProviderAllocation)):
                raise ValidationError(f"Ungueltiger Tippgeber-Eintrag: {tp!r}", 'tipProviders')
        tip_providers = [
            tp if isinstance(tp, TipProviderAllocation) else TipProviderAllocation.from_dict(tp)
            for tp in raw_tips
        ]
        if not tip_providers and d.get('tipProviderId'):
            tip_providers = [TipProviderAllocation(
                id=str(d['tipProviderId']),
                name=d.get('tipProviderName') or str(d['tipProviderId']),
                provision_percentage=d.get('tipProviderProvisionPercentage') or 0,
            )]
        elif not tip_providers and isinstance(d.get('tipProvider'), dict):
            tip_providers = [TipProviderAllocation.from_dict(d['tipProvider'])]

        category = d.get('categoryType') or d.get('category_type') or d.get('category')
        product = d.get('product')
        provider = d.get('productProvider')

        owner_snapshot = d.get('ownerProvisionSnapshot')
        manager_snapshot = d.get('managerProvisionSnapshot')
        return cls(
            id=str(d.get('id') or ''),
            employee_id=str(d.get('employeeId') or d.get('employee_id') or ''),
            category_type=category,
            provision_amount=d.get('provisionAmount', d.get('provision_amount')),
            status=d.get('status') or RevenueStatus.SUBMITTED,
            tip_providers=tip_providers,
            has_vat=bool(d.get('hasVAT', d.get('has_vat', False))),
            vat_rate=d.get('vatRate', d.get('vat_rate')),
            entry_date=d.get('entryDate') or d.get('entry_date'),
            customer_name=d.get('customerName') or '',
            customer_number=str(d.get('customerNumber') or ''),
            product_name=(product.get('name', '') if isinstance(product, dict) else product) or
                         d.get('productName') or '',
            provider_name=(provider.get('name', '') if isinstance(provider, dict) else provider) or
                          d.get('providerName') or '',
            contract_number=str(d.get('contractNumber') or ''),
            notes=d.get('notes') or '',
            source=d.get('source'),
            source_reference=d.get('sourceReference'),
            manual_billing=bool(d.get('manualBilling', False)),
            owner_provision_snapshot=(
                _to_float(owner_snapshot, 'ownerProvisionSnapshot') if owner_snapshot is not None else None),
            manager_provision_snapshot=(
                _to_float(manager_snapshot, 'managerProvisionSnapshot') if manager_snapshot is not None else None),
            hierarchy_snapshot=HierarchySnapshot.from_dict(d.get('hierarchySnapshot')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'employeeId': self.employee_id,
            'categoryType': self.category_type,
            'provisionAmount': self.provision_amount,
            'status': self.status.value,
            'tipProviders': [tp.to_dict() for tp in self.tip_providers],
            'hasVAT': self.has_vat,
            'vatRate': self.vat_rate,
            'entryDate': self.entry_date.isoformat() if self.entry_date else None,
            'customerName': self.customer_name,
            'customerNumber': self.customer_number,
            'productName': self.product_name,
            'providerName': self.provider_name,
            'contractNumber': self.contract_number,
            'notes': self.notes,
            'source': self.source,
            'sourceReference': self.source_reference,
            'manualBilling': self.manual_billing,
            'ownerProvisionSnapshot': self.owner_provision_snapshot,
            'managerProvisionSnapshot': self.manager_provision_snapshot,
            'hierarchySnapshot': self.hierarchy_snapshot.to_dict() if self.hierarchy_snapshot else None,
        }
