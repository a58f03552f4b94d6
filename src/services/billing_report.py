"""
Provisionsabrechnung je Mitarbeiter und Zeitraum.

Drei Quellen werden getrennt summiert und anschliessend zusammengefuehrt:
- eigene Umsaetze (Snapshot-Satz bevorzugt, abzueglich Tippgeber)
- Team-Umsaetze (Differenzprovision ueber Untergebenen)
- Tippgeber-Umsaetze (Mitarbeiter als Tippgeber bei fremden Umsaetzen)
"""

import logging
from typing import Iterable, List, Optional, Tuple

from config.provision_rules import (
    ALWAYS_EXCLUDED_CATEGORIES, BILLING_INCLUSIONS, WIFO_IMPORT_SOURCE, round_currency, round_rate,
)
from domain.provision.billing import (
    BillingReport, EmployeeDetails, LineItemSource, ReportLineItem, ReportPeriod,
)
from domain.provision.errors import ProvisionError
from domain.provision.hierarchy import HierarchyTree
from domain.provision.revenue import RevenueEntry, RevenueStatus
from services.provision_cascade import ProvisionCascadeCalculator
from services.provision_snapshot import SnapshotResolver

logger = logging.getLogger(__name__)


# =============================================================================
# Abrechnungs-Ausschluss
# =============================================================================

class BillingExclusionRule:
    """Welche Umsaetze zahlt der Produktgeber direkt an den Partner aus?

    Regeln in dieser Reihenfolge:
    A) WIFO-Importe
    B) Versicherungen
    C) Mitarbeiter mit §34c/§34i GewO: alles ausser BILLING_INCLUSIONS
    manual_billing am Umsatz hebt jeden Ausschluss auf.
    """

    @staticmethod
    def _normalize_product(name: Optional[str]) -> str:
        return (name or '').strip().lower()

    @classmethod
    def is_included(cls, category_type: str, product_name: Optional[str]) -> bool:
        return (category_type, cls._normalize_product(product_name)) in BILLING_INCLUSIONS

    @classmethod
    def should_exclude(
        cls,
        category_type: Optional[str],
        product_name: Optional[str],
        has_direct_payment_gewo: bool = False,
        entry_source: Optional[str] = None,
    ) -> bool:
        if entry_source == WIFO_IMPORT_SOURCE:
            return True
        if category_type in ALWAYS_EXCLUDED_CATEGORIES:
            return True
        if not category_type or not has_direct_payment_gewo:
            return False
        return not cls.is_included(category_type, product_name)

    @classmethod
    def should_exclude_entry(cls, entry: RevenueEntry, has_direct_payment_gewo: bool = False) -> bool:
        if entry.manual_billing:
            return False
        return cls.should_exclude(
            entry.category_type, entry.product_name, has_direct_payment_gewo, entry.source,
        )


# =============================================================================
# Positionen
# =============================================================================

class BillingReportAssembler:
    """Baut Abrechnungspositionen aus Umsaetzen."""

    def __init__(
        self,
        calculator: Optional[ProvisionCascadeCalculator] = None,
        resolver: Optional[SnapshotResolver] = None,
    ):
        self._calculator = calculator or ProvisionCascadeCalculator()
        self._resolver = resolver or SnapshotResolver(self._calculator.rate_mapping)

    @staticmethod
    def provision_vat(
        provision_amount: float, entry: RevenueEntry, employee: EmployeeDetails
    ) -> Tuple[float, float, float]:
        """(USt-Satz, USt-Betrag, Brutto) der Provision.

        USt nur, wenn der Umsatz USt-pflichtig ist und der Mitarbeiter kein
        Kleinunternehmer ist.
        """
        if not entry.has_vat or employee.is_small_business:
            return 0.0, 0.0, provision_amount
        vat_amount = round_currency(provision_amount * entry.vat_rate / 100)
        return entry.vat_rate, vat_amount, round_currency(provision_amount + vat_amount)

    def _line_item(
        self,
        entry: RevenueEntry,
        employee: EmployeeDetails,
        source: LineItemSource,
        percentage: float,
        subordinate_id: Optional[str] = None,
        subordinate_name: Optional[str] = None,
    ) -> ReportLineItem:
        amount = round_currency(entry.provision_amount * percentage / 100)
        vat_rate, vat_amount, gross = self.provision_vat(amount, entry, employee)
        return ReportLineItem(
            original_entry_id=entry.id,
            category_type=entry.category_type,
            net_amount=entry.net_amount,
            vat_rate=entry.vat_rate if entry.has_vat else 0.0,
            vat_amount=entry.vat_amount,
            gross_amount=entry.gross_amount,
            provision_percentage=round_rate(percentage),
            provision_amount=amount,
            provision_vat_rate=vat_rate,
            provision_vat_amount=vat_amount,
            provision_gross_amount=gross,
            source=source,
            entry_date=entry.entry_date,
            customer_name=entry.customer_name,
            product_name=entry.product_name,
            provider_name=entry.provider_name,
            contract_number=entry.contract_number,
            subordinate_id=subordinate_id,
            subordinate_name=subordinate_name,
            status=entry.status.value,
        )

    def own_line_item(self, entry: RevenueEntry, employee: EmployeeDetails,
                      tree: HierarchyTree) -> ReportLineItem:
        """Eigener Umsatz: Snapshot- oder Live-Satz abzueglich Tippgeber."""
        rates = self._resolver.resolve_rates(entry, tree)
        deduction = min(entry.total_tip_provider_percentage, rates.owner_rate)
        return self._line_item(entry, employee, LineItemSource.OWN, rates.owner_rate - deduction)

    def hierarchy_share(self, entry: RevenueEntry, manager_id: str, tree: HierarchyTree) -> float:
        """Differenz-Satz der Fuehrungskraft.

        Direkter Vorgesetzter mit Snapshot: Vorgesetzten- minus Erfasser-Satz
        aus dem Snapshot. Sonst der Anteil aus der Live-Kaskade.
        """
        snapshot = entry.provision_snapshot if self._resolver.has_usable_snapshot(entry) else None
        if snapshot is not None and snapshot.hierarchy.manager_id == manager_id:
            return max(0.0, (snapshot.manager_rate or 0.0) - snapshot.owner_rate)
        cascade = self._calculator.compute_cascade(entry, tree)
        return sum(p.rate_percentage for p in cascade.managers if p.node_id == manager_id)

    def hierarchy_line_item(self, entry: RevenueEntry, employee: EmployeeDetails,
                            tree: HierarchyTree) -> Optional[ReportLineItem]:
        """Team-Umsatz; None wenn die Fuehrungskraft nichts verdient."""
        share = self.hierarchy_share(entry, employee.id, tree)
        if share <= 0:
            return None
        owner = tree.find_node(entry.employee_id)
        owner_name = owner.name if owner else entry.employee_id
        return self._line_item(
            entry, employee, LineItemSource.HIERARCHY, share,
            subordinate_id=entry.employee_id, subordinate_name=owner_name,
        )

    def tip_provider_line_item(self, entry: RevenueEntry,
                               employee: EmployeeDetails) -> Optional[ReportLineItem]:
        allocation = next((tp for tp in entry.tip_providers if tp.id == employee.id), None)
        if allocation is None:
            return None
        owner_name = entry.hierarchy_snapshot.owner_name if entry.hierarchy_snapshot else entry.employee_id
        return self._line_item(
            entry, employee, LineItemSource.TIP_PROVIDER, allocation.provision_percentage,
            subordinate_id=entry.employee_id, subordinate_name=owner_name,
        )


# =============================================================================
# Bericht
# =============================================================================

class BillingReportService:
    """Erstellt die Provisionsabrechnung eines Mitarbeiters.

    Usage:
        service = BillingReportService()
        report = service.generate_report('berater-1', entries, tree,
                                         period=ReportPeriod.for_month(2025, 3))
        print(report.total_summary.total_provision)
    """

    def __init__(self, assembler: Optional[BillingReportAssembler] = None):
        self._assembler = assembler or BillingReportAssembler()

    def generate_report(
        self,
        employee_id: str,
        entries: Iterable[RevenueEntry],
        tree: HierarchyTree,
        period: Optional[ReportPeriod] = None,
        employee: Optional[EmployeeDetails] = None,
        include_hierarchy: bool = True,
        include_tip_provider: bool = True,
        apply_exclusion_rules: bool = True,
    ) -> BillingReport:
        """Raises NodeNotFoundError, wenn der Mitarbeiter nicht im Baum ist
        und keine EmployeeDetails uebergeben wurden. Fehler einzelner
        Umsaetze brechen den Bericht nicht ab."""
        if employee is None:
            employee = EmployeeDetails.from_hierarchy_node(tree.get_node(employee_id))
        entries = list(entries)
        # nur ein uebergebener Zeitraum filtert; ein abgeleiteter ist reine Anzeige
        filter_period = period
        if period is None:
            dates = [e.entry_date for e in entries if e.entry_date]
            period = ReportPeriod.custom(min(dates), max(dates)) if dates else None

        logger.info(f"Erstelle Abrechnung fuer {employee.name} ({employee_id})"
                    + (f", Zeitraum {period.display_name}" if period else ""))

        subordinate_ids = (
            {node.id for node in tree.get_descendants(employee_id)}
            if include_hierarchy and tree.has_node(employee_id) else set()
        )

        excluded_ids = set()
        failed_ids: List[str] = []
        direct_payment = 0
        own_items: List[ReportLineItem] = []
        hierarchy_items: List[ReportLineItem] = []
        tip_items: List[ReportLineItem] = []

        for entry in entries:
            if filter_period is not None and not filter_period.contains_date(entry.entry_date):
                continue
            is_own = entry.employee_id == employee_id
            is_team = entry.employee_id in subordinate_ids
            is_tip = include_tip_provider and employee_id in entry.tip_provider_ids
            if not (is_own or is_team or is_tip):
                continue
            if entry.is_excluded_from_calculations:
                excluded_ids.add(entry.id)
                continue
            if apply_exclusion_rules and BillingExclusionRule.should_exclude_entry(
                    entry, employee.has_direct_payment_gewo):
                direct_payment += 1
                continue
            try:
                if is_own:
                    own_items.append(self._assembler.own_line_item(entry, employee, tree))
                if is_team:
                    item = self._assembler.hierarchy_line_item(entry, employee, tree)
                    if item is not None:
                        hierarchy_items.append(item)
                if is_tip:
                    item = self._assembler.tip_provider_line_item(entry, employee)
                    if item is not None:
                        tip_items.append(item)
            except ProvisionError as e:
                failed_ids.append(entry.id)
                logger.warning(f"Umsatz {entry.id} nicht berechenbar, uebersprungen: {e.message}")

        report = BillingReport(
            employee=employee,
            period=period,
            own_line_items=own_items,
            hierarchy_line_items=hierarchy_items,
            tip_provider_line_items=tip_items,
            excluded_entry_count=len(excluded_ids),
            direct_payment_entry_count=direct_payment,
            failed_entry_ids=failed_ids,
        )
        logger.info(
            f"Abrechnung {employee_id}: {len(own_items)} eigene, {len(hierarchy_items)} Team-, "
            f"{len(tip_items)} Tippgeber-Positionen, Provision gesamt "
            f"{report.total_summary.total_provision:.2f} EUR"
        )
        if report.has_failures:
            logger.warning(report.failure_notice())
        return report

    def finalize_report(self, report: BillingReport, entries: Iterable[RevenueEntry]) -> int:
        """Setzt die eigenen, noch eingereichten Umsaetze nach dem Export auf 'provisioned'.

        Team- und Tippgeber-Positionen gehoeren anderen Mitarbeitern und
        bleiben unveraendert. Bereits abgerechnete Umsaetze werden
        uebersprungen, ein erneuter Lauf aendert nichts.

        Returns:
            Anzahl umgestellter Umsaetze
        """
        own_ids = {item.original_entry_id for item in report.own_line_items}
        finalized = 0
        for entry in entries:
            if entry.id not in own_ids or entry.status is not RevenueStatus.SUBMITTED:
                continue
            entry.transition_to(RevenueStatus.PROVISIONED)
            finalized += 1
        logger.info(f"Abrechnung {report.employee.id} abgeschlossen: {finalized} Umsaetze -> provisioned")
        return finalized
