"""
Billing-Aggregation: Abrechnungspositionen zu ProvisionSummary verdichten.

summarize() und merge() sind reine Funktionen ueber unveraenderlichen
Summen. summarize_entries() und summarize_by_employee() arbeiten auf
Umsaetzen und isolieren Fehler je Umsatz: ein nicht berechenbarer Umsatz
wird protokolliert, gezaehlt und uebersprungen.
"""

import logging
from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Callable, Dict, Iterable, List, Optional

from domain.provision.billing import LineItemSource, ProvisionSummary, ReportLineItem
from domain.provision.cascade import ParticipantRole
from domain.provision.errors import ProvisionError
from domain.provision.hierarchy import HierarchyTree
from domain.provision.revenue import RevenueEntry
from services.provision_cascade import ProvisionCascadeCalculator

logger = logging.getLogger(__name__)


LineItemFactory = Callable[[RevenueEntry], Optional[ReportLineItem]]


@dataclass
class AggregationResult:
    summary: ProvisionSummary = field(default_factory=ProvisionSummary)
    by_employee: Dict[str, ProvisionSummary] = field(default_factory=dict)
    excluded_entry_count: int = 0
    failed_entry_ids: List[str] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def failed_entry_count(self) -> int:
        return len(self.failed_entry_ids)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_entry_ids)

    def failure_notice(self) -> str:
        if not self.failed_entry_ids:
            return ''
        return f"{self.failed_entry_count} Eintraege konnten nicht berechnet werden"

    def record_failure(self, entry: RevenueEntry, error: ProvisionError) -> None:
        self.failed_entry_ids.append(entry.id)
        self.failures.append({'entryId': entry.id, **error.to_dict()})
        logger.warning(f"Umsatz {entry.id} nicht berechenbar, uebersprungen: {error.message}")


def revenue_line_item(entry: RevenueEntry) -> ReportLineItem:
    """Umsatz als Position ohne Aufteilung (volle Provision, z.B. Unternehmensumsatz)."""
    return ReportLineItem(
        original_entry_id=entry.id,
        category_type=entry.category_type,
        net_amount=entry.net_amount,
        vat_rate=entry.vat_rate if entry.has_vat else 0.0,
        vat_amount=entry.vat_amount,
        gross_amount=entry.gross_amount,
        provision_percentage=100.0,
        provision_amount=entry.provision_amount,
        entry_date=entry.entry_date,
        customer_name=entry.customer_name,
        product_name=entry.product_name,
        provider_name=entry.provider_name,
        contract_number=entry.contract_number,
        status=entry.status.value,
    )


class BillingAggregator:
    """Verdichtet Positionen und Umsaetze zu Provisions-Summen."""

    def __init__(self, calculator: Optional[ProvisionCascadeCalculator] = None):
        self._calculator = calculator or ProvisionCascadeCalculator()

    # =========================================================================
    # Reine Summen
    # =========================================================================

    def summarize(self, line_items: Iterable[ReportLineItem]) -> ProvisionSummary:
        return ProvisionSummary.from_line_items(line_items)

    def merge(self, first: ProvisionSummary, second: ProvisionSummary,
              *more: ProvisionSummary) -> ProvisionSummary:
        """Assoziative Kombination: merge(summarize(A), summarize(B)) == summarize(A + B)."""
        return reduce(lambda acc, s: acc.add(s), (second,) + more, first)

    # =========================================================================
    # Umsaetze
    # =========================================================================

    def summarize_entries(
        self,
        entries: Iterable[RevenueEntry],
        line_item_factory: LineItemFactory = revenue_line_item,
    ) -> AggregationResult:
        """Summiert Umsaetze ueber eine Positions-Fabrik.

        Abgelehnte/stornierte Umsaetze werden nur gezaehlt. Liefert die
        Fabrik None, entfaellt der Umsatz ohne Zaehlung.
        """
        result = AggregationResult()
        items = []
        for entry in entries:
            if entry.is_excluded_from_calculations:
                result.excluded_entry_count += 1
                continue
            try:
                item = line_item_factory(entry)
            except ProvisionError as e:
                result.record_failure(entry, e)
                continue
            if item is not None:
                items.append(item)
        result.summary = self.summarize(items)
        if result.has_failures:
            logger.warning(result.failure_notice())
        return result

    def summarize_by_employee(
        self, entries: Iterable[RevenueEntry], tree: HierarchyTree
    ) -> AggregationResult:
        """Provisions-Summe je Teilnehmer (Erfasser, Fuehrungskraft, Tippgeber, Unternehmen)."""
        result = AggregationResult()
        items: Dict[str, List[ReportLineItem]] = {}
        computed: List[ReportLineItem] = []
        for entry in entries:
            if entry.is_excluded_from_calculations:
                result.excluded_entry_count += 1
                continue
            try:
                cascade = self._calculator.compute_cascade(entry, tree)
            except ProvisionError as e:
                result.record_failure(entry, e)
                continue
            # Gesamtsumme zaehlt jeden Umsatz genau einmal
            computed.append(revenue_line_item(entry))
            for participant in cascade.participants:
                source = {
                    ParticipantRole.OWNER: LineItemSource.OWN,
                    ParticipantRole.TIP_PROVIDER: LineItemSource.TIP_PROVIDER,
                }.get(participant.role, LineItemSource.HIERARCHY)
                items.setdefault(participant.node_id, []).append(ReportLineItem(
                    original_entry_id=entry.id,
                    category_type=entry.category_type,
                    net_amount=entry.net_amount,
                    provision_percentage=participant.rate_percentage,
                    provision_amount=participant.amount,
                    source=source,
                    entry_date=entry.entry_date,
                    subordinate_id=entry.employee_id if source is not LineItemSource.OWN else None,
                    status=entry.status.value,
                ))

        result.by_employee = {node_id: self.summarize(node_items) for node_id, node_items in items.items()}
        result.summary = self.summarize(computed)
        logger.info(
            f"Summen je Teilnehmer: {len(result.by_employee)} Teilnehmer, "
            f"{result.excluded_entry_count} ausgeschlossen, {result.failed_entry_count} Fehler"
        )
        return result
