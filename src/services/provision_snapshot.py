"""
Provisions-Snapshots: Erfassung, Lesepfad und einmalige Nachmigration.

Der Snapshot friert nur zwei Ebenen ein: den Erfasser und seinen direkten
Vorgesetzten. Tabellen und Dashboards lesen ueber resolve_rates() und
bevorzugen den Snapshot; die vollstaendige Kaskade rechnet weiterhin live.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from config.provision_rules import CategoryRateMapping
from domain.provision.errors import ParticipantNotFoundError, ProvisionError, SnapshotInconsistencyError
from domain.provision.hierarchy import HierarchyTree
from domain.provision.revenue import HierarchySnapshot, ProvisionSnapshot, RevenueEntry

logger = logging.getLogger(__name__)


RATE_SOURCE_SNAPSHOT = 'snapshot'
RATE_SOURCE_LIVE = 'live'


@dataclass(frozen=True)
class ResolvedRates:
    owner_rate: float
    manager_rate: Optional[float]
    source: str = RATE_SOURCE_LIVE

    @property
    def is_frozen(self) -> bool:
        return self.source == RATE_SOURCE_SNAPSHOT


@dataclass
class MigrationResult:
    """Ergebnis eines Backfill-Laufs."""
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    errors: List[Dict[str, Any]] = field(default_factory=list)
    migrated_entry_ids: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.failed > 0

    def summary(self) -> str:
        prefix = "[DRY-RUN] " if self.dry_run else ""
        return (
            f"{prefix}{self.total} Umsaetze: {self.migrated} migriert, "
            f"{self.skipped} bereits mit Snapshot, {self.failed} fehlgeschlagen"
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotResolver:
    """Erfasst und liest Provisions-Snapshots.

    Args:
        rate_mapping: Kategorie -> Provisionssatz-Feld. Fuer die Migration
            von Altdaten CategoryRateMapping.legacy() uebergeben.
        clock: liefert den Erfassungszeitpunkt (Tests)
    """

    def __init__(
        self,
        rate_mapping: Optional[CategoryRateMapping] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._mapping = rate_mapping or CategoryRateMapping()
        self._clock = clock or _utc_now

    @property
    def rate_mapping(self) -> CategoryRateMapping:
        return self._mapping

    def capture_snapshot(
        self, entry: RevenueEntry, tree: HierarchyTree, migrated: bool = False
    ) -> ProvisionSnapshot:
        """Liest die aktuellen Saetze von Erfasser und direktem Vorgesetzten.

        Raises:
            ParticipantNotFoundError: Erfasser nicht im Baum
        """
        owner = tree.find_node(entry.employee_id)
        if owner is None:
            raise ParticipantNotFoundError(entry.employee_id, entry.id)
        rate_field = self._mapping.field_for(entry.category_type)
        manager = tree.find_node(owner.parent_id)
        captured_at = self._clock().isoformat()
        return ProvisionSnapshot(
            owner_rate=owner.rate_for_field(rate_field),
            manager_rate=manager.rate_for_field(rate_field) if manager else None,
            hierarchy=HierarchySnapshot(
                owner_id=owner.id,
                owner_name=owner.name,
                manager_id=manager.id if manager else None,
                manager_name=manager.name if manager else None,
                captured_at=captured_at,
                migrated_at=captured_at if migrated else None,
            ),
        )

    def record_entry(self, entry: RevenueEntry, tree: HierarchyTree) -> RevenueEntry:
        """Snapshot beim Anlegen eines Umsatzes. Vorhandene Snapshots bleiben."""
        if entry.has_provision_snapshot:
            return entry
        entry.apply_snapshot(self.capture_snapshot(entry, tree))
        logger.info(
            f"Snapshot fuer Umsatz {entry.id}: Erfasser {entry.owner_provision_snapshot} %, "
            f"Vorgesetzter {entry.manager_provision_snapshot} %"
        )
        return entry

    def has_usable_snapshot(self, entry: RevenueEntry) -> bool:
        """Vollstaendiger Snapshot; unvollstaendige werden wie 'kein Snapshot' behandelt."""
        try:
            return entry.snapshot_consistency()
        except SnapshotInconsistencyError as e:
            logger.warning(f"{e.message} - verwende aktuelle Saetze")
            return False

    def resolve_rates(self, entry: RevenueEntry, tree: HierarchyTree) -> ResolvedRates:
        """Erfasser-/Vorgesetzten-Satz: Snapshot wenn vorhanden, sonst live aus dem Baum."""
        if self.has_usable_snapshot(entry):
            return ResolvedRates(
                owner_rate=entry.owner_provision_snapshot,
                manager_rate=entry.manager_provision_snapshot,
                source=RATE_SOURCE_SNAPSHOT,
            )
        owner = tree.find_node(entry.employee_id)
        if owner is None:
            raise ParticipantNotFoundError(entry.employee_id, entry.id)
        rate_field = self._mapping.field_for(entry.category_type)
        manager = tree.find_node(owner.parent_id)
        return ResolvedRates(
            owner_rate=owner.rate_for_field(rate_field),
            manager_rate=manager.rate_for_field(rate_field) if manager else None,
            source=RATE_SOURCE_LIVE,
        )

    def backfill(
        self,
        entries: Iterable[RevenueEntry],
        tree: HierarchyTree,
        dry_run: bool = False,
    ) -> MigrationResult:
        """Einmalige Nachmigration fuer Umsaetze ohne Snapshot.

        Wiederholte Laeufe sind ohne Wirkung: Umsaetze mit vollstaendigem
        Snapshot werden uebersprungen. Fehler einzelner Umsaetze werden
        gesammelt, die restlichen Umsaetze weiter migriert.
        """
        result = MigrationResult(dry_run=dry_run)
        for entry in entries:
            result.total += 1
            if entry.has_provision_snapshot:
                result.skipped += 1
                continue
            try:
                snapshot = self.capture_snapshot(entry, tree, migrated=True)
            except ProvisionError as e:
                result.failed += 1
                result.errors.append({'entryId': entry.id, **e.to_dict()})
                logger.warning(f"Migration Umsatz {entry.id} fehlgeschlagen: {e.message}")
                continue
            if not dry_run:
                entry.apply_snapshot(snapshot)
            result.migrated += 1
            result.migrated_entry_ids.append(entry.id)

        logger.info(result.summary())
        return result
