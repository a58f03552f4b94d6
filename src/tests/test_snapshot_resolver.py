"""
Tests fuer Provisions-Snapshots: Erfassung, Lesepfad und Backfill.
"""

import pytest

from conftest import FIXED_NOW, make_entry
from config.provision_rules import CategoryRateMapping
from domain.provision.errors import ParticipantNotFoundError
from services.provision_cascade import ProvisionCascadeCalculator
from services.provision_snapshot import RATE_SOURCE_LIVE, RATE_SOURCE_SNAPSHOT, SnapshotResolver


@pytest.fixture
def resolver(clock):
    return SnapshotResolver(clock=clock)


class TestCapture:

    def test_capture_owner_and_direct_manager(self, resolver, tree, entry):
        snapshot = resolver.capture_snapshot(entry, tree)
        assert snapshot.owner_rate == 40.0
        assert snapshot.manager_rate == 60.0
        assert snapshot.hierarchy.manager_id == 'leiter'
        assert snapshot.hierarchy.owner_name == 'Ben Berater'
        assert snapshot.hierarchy.captured_at == FIXED_NOW.isoformat()
        assert snapshot.hierarchy.migrated_at is None

    def test_capture_for_root_owner(self, resolver, tree):
        snapshot = resolver.capture_snapshot(make_entry(employee_id='acme'), tree)
        assert snapshot.manager_rate is None
        assert snapshot.hierarchy.manager_id is None

    def test_manager_directly_under_root_is_root(self, resolver, tree):
        snapshot = resolver.capture_snapshot(make_entry(employee_id='leiter'), tree)
        assert snapshot.hierarchy.manager_id == 'acme'
        assert snapshot.manager_rate == 100.0

    def test_unknown_owner(self, resolver, tree):
        with pytest.raises(ParticipantNotFoundError):
            resolver.capture_snapshot(make_entry(employee_id='ehemalig'), tree)


class TestResolveRates:

    def test_live_without_snapshot(self, resolver, tree, entry):
        rates = resolver.resolve_rates(entry, tree)
        assert rates.source == RATE_SOURCE_LIVE
        assert not rates.is_frozen
        assert rates.owner_rate == 40.0
        assert rates.manager_rate == 60.0

    def test_snapshot_survives_rate_change(self, resolver, tree, entry):
        resolver.record_entry(entry, tree)
        tree.update_rates('berater', bank_provision_rate=50)
        tree.update_rates('leiter', bank_provision_rate=80)

        rates = resolver.resolve_rates(entry, tree)
        assert rates.is_frozen
        assert rates.owner_rate == 40.0
        assert rates.manager_rate == 60.0

        # Kaskade rechnet weiter mit aktuellen Saetzen
        cascade = ProvisionCascadeCalculator().compute_cascade(entry, tree)
        assert cascade.owner.amount == 500.0
        assert cascade.amount_for('leiter') == 300.0

    def test_record_entry_keeps_existing_snapshot(self, resolver, tree, entry):
        resolver.record_entry(entry, tree)
        tree.update_rates('berater', bank_provision_rate=50)
        resolver.record_entry(entry, tree)
        assert entry.owner_provision_snapshot == 40.0

    def test_partial_snapshot_falls_back_to_live(self, resolver, tree, caplog):
        entry = make_entry(owner_provision_snapshot=25.0)
        with caplog.at_level('WARNING'):
            rates = resolver.resolve_rates(entry, tree)
        assert rates.source == RATE_SOURCE_LIVE
        assert rates.owner_rate == 40.0
        assert 'Unvollstaendiger Provisions-Snapshot' in caplog.text


class TestBackfill:

    def test_backfill_is_idempotent(self, resolver, tree):
        entries = [make_entry('r-1'), make_entry('r-2', employee_id='kollege')]
        first = resolver.backfill(entries, tree)
        assert (first.total, first.migrated, first.skipped, first.failed) == (2, 2, 0, 0)
        assert first.migrated_entry_ids == ['r-1', 'r-2']
        assert entries[1].owner_provision_snapshot == 30.0
        assert entries[0].hierarchy_snapshot.migrated_at == FIXED_NOW.isoformat()

        tree.update_rates('kollege', bank_provision_rate=45)
        second = resolver.backfill(entries, tree)
        assert (second.migrated, second.skipped) == (0, 2)
        assert entries[1].owner_provision_snapshot == 30.0

    def test_backfill_repairs_partial_snapshot(self, resolver, tree):
        entry = make_entry(owner_provision_snapshot=25.0)
        result = resolver.backfill([entry], tree)
        assert result.migrated == 1
        assert entry.has_provision_snapshot
        assert entry.owner_provision_snapshot == 40.0

    def test_failures_are_collected(self, resolver, tree):
        entries = [make_entry('r-1', employee_id='ehemalig'), make_entry('r-2')]
        result = resolver.backfill(entries, tree)
        assert result.failed == 1
        assert result.migrated == 1
        assert result.has_errors
        assert result.errors[0]['entryId'] == 'r-1'
        assert result.errors[0]['code'] == 'PARTICIPANT_NOT_FOUND'

    def test_dry_run_changes_nothing(self, resolver, tree, entry):
        result = resolver.backfill([entry], tree, dry_run=True)
        assert result.migrated == 1
        assert result.dry_run
        assert result.summary().startswith('[DRY-RUN]')
        assert not entry.has_provision_snapshot

    def test_legacy_mapping_for_energy_contracts(self, tree, clock):
        resolver = SnapshotResolver(CategoryRateMapping.legacy(), clock=clock)
        entry = make_entry(category='energyContracts')
        resolver.backfill([entry], tree)
        assert entry.owner_provision_snapshot == 40.0
        assert entry.manager_provision_snapshot == 60.0
