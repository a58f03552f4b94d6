"""
Provisions-Kaskade: verteilt die Provision eines Umsatzes auf
Erfasser, Tippgeber, Vorgesetzte und Unternehmen.

Ablauf (compute_cascade):
1. Erfasser im Organigramm suchen, Basissatz ueber das Kategorie-Mapping
2. Tippgeber-Anteile vom Erfasser-Satz abziehen (min. 0 %)
3. Vorgesetztenkette nach oben (ohne Wurzel): jede Fuehrungskraft erhaelt
   nur die Differenz ueber dem bisher hoechsten Satz
4. Wurzel (Unternehmen) erhaelt den Rest

Die Kaskade rechnet immer mit den aktuellen Saetzen des Baums.
Eingefrorene Snapshot-Saetze nutzt nur der SnapshotResolver.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from config.provision_rules import CURRENCY_TOLERANCE, CategoryRateMapping, round_currency, round_rate
from domain.provision.cascade import Participant, ParticipantRole, ProvisionCascade
from domain.provision.errors import NodeNotFoundError, ParticipantNotFoundError, ProvisionError
from domain.provision.hierarchy import HierarchyNode, HierarchyTree
from domain.provision.revenue import RevenueEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchicalRevenue:
    """Umsatz eines Untergebenen, an dem eine Fuehrungskraft mitverdient."""
    entry: RevenueEntry
    owner: HierarchyNode
    manager: HierarchyNode
    owner_rate: float
    difference_rate: float
    manager_amount: float
    hierarchy_level: int

    @property
    def has_manager_provision(self) -> bool:
        return self.manager_amount > 0


class ProvisionCascadeCalculator:
    """Berechnet Provisions-Kaskaden.

    Usage:
        calculator = ProvisionCascadeCalculator()
        cascade = calculator.compute_cascade(entry, tree)
        for participant in cascade.participants:
            print(participant.name, participant.amount)
    """

    def __init__(self, rate_mapping: Optional[CategoryRateMapping] = None):
        self._mapping = rate_mapping or CategoryRateMapping()

    @property
    def rate_mapping(self) -> CategoryRateMapping:
        return self._mapping

    def rate_for(self, node: HierarchyNode, category_type: str) -> float:
        return node.rate_for_field(self._mapping.field_for(category_type))

    def _resolve_owner(self, entry: RevenueEntry, tree: HierarchyTree) -> HierarchyNode:
        owner = tree.find_node(entry.employee_id)
        if owner is None:
            raise ParticipantNotFoundError(entry.employee_id, entry.id)
        return owner

    # =========================================================================
    # Kaskade
    # =========================================================================

    def compute_cascade(self, entry: RevenueEntry, tree: HierarchyTree) -> ProvisionCascade:
        """Teilnehmer in Reihenfolge Erfasser -> Tippgeber -> Vorgesetzte -> Unternehmen.

        Raises:
            ParticipantNotFoundError: Erfasser nicht im Baum
        """
        owner = self._resolve_owner(entry, tree)
        amount = entry.provision_amount
        base_rate = self.rate_for(owner, entry.category_type)

        owner_rate = max(0.0, base_rate - entry.total_tip_provider_percentage)
        participants: List[Participant] = [Participant(
            node_id=owner.id,
            name=owner.name,
            role=ParticipantRole.OWNER,
            rate_percentage=round_rate(owner_rate),
            amount=round_currency(amount * owner_rate / 100),
        )]

        for tip in entry.tip_providers:
            participants.append(Participant(
                node_id=tip.id,
                name=tip.name,
                role=ParticipantRole.TIP_PROVIDER,
                rate_percentage=round_rate(tip.provision_percentage),
                amount=tip.calculate_amount(amount),
            ))

        # Differenz immer auf den ungekuerzten Erfasser-Satz
        cumulative_rate = base_rate
        for ancestor in tree.get_ancestors(owner.id):
            if ancestor.is_root:
                break
            ancestor_rate = self.rate_for(ancestor, entry.category_type)
            if ancestor_rate <= cumulative_rate:
                continue
            delta = ancestor_rate - cumulative_rate
            participants.append(Participant(
                node_id=ancestor.id,
                name=ancestor.name,
                role=ParticipantRole.MANAGER,
                rate_percentage=round_rate(delta),
                amount=round_currency(amount * delta / 100),
            ))
            cumulative_rate = ancestor_rate

        company_amount = round_currency(amount - sum(p.amount for p in participants))
        company_rate = round_rate(100.0 - sum(p.rate_percentage for p in participants))
        overallocation = 0.0
        if company_rate < 0 or (amount >= 0 and company_amount < -CURRENCY_TOLERANCE):
            overallocation = round_currency(abs(company_amount))
            logger.warning(
                f"Umsatz {entry.id}: Anteile uebersteigen 100 % "
                f"({round_rate(100.0 - company_rate)} %), Unternehmen erhaelt 0"
            )
            company_amount = 0.0
            company_rate = 0.0
        elif amount >= 0 and company_amount < 0:
            # Cent-Rundung der Einzelanteile
            company_amount = 0.0

        root = tree.root
        participants.append(Participant(
            node_id=root.id,
            name=root.name,
            role=ParticipantRole.COMPANY,
            rate_percentage=company_rate,
            amount=company_amount,
        ))

        cascade = ProvisionCascade(
            entry_id=entry.id,
            category_type=entry.category_type,
            provision_amount=amount,
            base_rate=base_rate,
            participants=participants,
            overallocation=overallocation,
        )
        logger.debug(
            f"Kaskade {entry.id}: {len(participants)} Teilnehmer, "
            f"Basis {base_rate} %, Unternehmen {company_amount:.2f} EUR"
        )
        return cascade

    def compute_manager_share(self, entry: RevenueEntry, tree: HierarchyTree, manager_id: str) -> float:
        """Differenzprovision einer Fuehrungskraft an diesem Umsatz (0.0 wenn keine)."""
        if not tree.has_node(manager_id):
            raise NodeNotFoundError(manager_id)
        cascade = self.compute_cascade(entry, tree)
        return round_currency(sum(p.amount for p in cascade.managers if p.node_id == manager_id))

    # =========================================================================
    # Team-Umsaetze
    # =========================================================================

    def collect_hierarchy_entries(
        self,
        manager_id: str,
        entries: Iterable[RevenueEntry],
        tree: HierarchyTree,
    ) -> List[HierarchicalRevenue]:
        """Umsaetze aller Untergebenen, an denen manager_id eine Differenz verdient.

        Abgelehnte/stornierte Umsaetze und Umsaetze ohne Differenz entfallen.
        Fehler einzelner Umsaetze werden protokolliert, der Rest wird weiter
        ausgewertet.
        """
        manager = tree.get_node(manager_id)
        subordinate_ids = {node.id for node in tree.get_descendants(manager_id)}
        result = []
        for entry in entries:
            if entry.employee_id not in subordinate_ids or entry.is_excluded_from_calculations:
                continue
            try:
                cascade = self.compute_cascade(entry, tree)
            except ProvisionError as e:
                logger.warning(f"Team-Umsatz {entry.id} uebersprungen: {e.message}")
                continue
            share = next((p for p in cascade.managers if p.node_id == manager_id), None)
            if share is None or share.amount <= 0:
                continue
            owner = tree.get_node(entry.employee_id)
            result.append(HierarchicalRevenue(
                entry=entry,
                owner=owner,
                manager=manager,
                owner_rate=cascade.base_rate,
                difference_rate=share.rate_percentage,
                manager_amount=share.amount,
                hierarchy_level=tree.get_depth(owner.id) - tree.get_depth(manager_id),
            ))
        logger.info(f"Team-Umsaetze fuer {manager_id}: {len(result)} mit Differenzprovision")
        return result
