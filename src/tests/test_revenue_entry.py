"""
Tests fuer RevenueEntry: Tippgeber, Status, USt und Snapshot-Konsistenz.
"""

import pytest

from conftest import make_entry
from domain.provision.errors import (
    InvalidStatusTransitionError, SnapshotInconsistencyError, ValidationError,
)
from domain.provision.revenue import (
    HierarchySnapshot, ProvisionSnapshot, RevenueEntry, RevenueStatus, TipProviderAllocation,
)


def _tip(tp_id, percentage):
    return TipProviderAllocation(id=tp_id, name=tp_id.title(), provision_percentage=percentage)


class TestTipProviders:

    def test_tip_provider_cannot_be_owner(self):
        with pytest.raises(ValidationError):
            make_entry(tip_providers=[_tip('berater', 10)])

    def test_duplicate_tip_provider(self):
        with pytest.raises(ValidationError):
            make_entry(tip_providers=[_tip('t1', 10), _tip('t1', 5)])

    def test_total_above_100(self):
        with pytest.raises(ValidationError):
            make_entry(tip_providers=[_tip('t1', 60), _tip('t2', 50)])

    def test_percentage_out_of_range(self):
        with pytest.raises(ValidationError):
            _tip('t1', 101)

    def test_amounts(self):
        entry = make_entry(amount=1000.0, tip_providers=[_tip('t1', 10), _tip('t2', 5)])
        assert entry.total_tip_provider_percentage == 15.0
        assert entry.tip_provider_amount == 150.0
        assert entry.tip_provider_ids == ['t1', 't2']

    def test_legacy_single_tip_provider_fields(self):
        entry = RevenueEntry.from_dict({
            'id': 'r-9', 'employeeId': 'berater', 'categoryType': 'bank', 'provisionAmount': 500,
            'tipProviderId': 'kollege', 'tipProviderName': 'Kai Kollege',
            'tipProviderProvisionPercentage': 20,
        })
        assert entry.has_tip_provider
        assert entry.tip_providers[0].name == 'Kai Kollege'
        assert entry.tip_providers[0].calculate_amount(entry.provision_amount) == 100.0


class TestStatus:

    def test_default_submitted(self, entry):
        assert entry.status is RevenueStatus.SUBMITTED
        assert not entry.is_excluded_from_calculations

    def test_transition(self, entry):
        entry.transition_to('provisioned')
        assert entry.status is RevenueStatus.PROVISIONED

    def test_terminal_status_is_final(self, entry):
        entry.transition_to(RevenueStatus.CANCELLED)
        assert entry.is_excluded_from_calculations
        with pytest.raises(InvalidStatusTransitionError):
            entry.transition_to(RevenueStatus.SUBMITTED)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            make_entry(status='storniert')


class TestAmounts:

    def test_vat(self):
        entry = make_entry(amount=1000.0, has_vat=True)
        assert entry.vat_rate == 19.0
        assert entry.vat_amount == 190.0
        assert entry.gross_amount == 1190.0

    def test_without_vat(self, entry):
        assert entry.vat_amount == 0.0
        assert entry.gross_amount == 1000.0

    def test_invalid_amount(self):
        with pytest.raises(ValidationError):
            make_entry(amount='viel')

    def test_comma_decimal(self):
        assert make_entry(amount='99,95').provision_amount == 99.95

    def test_empty_category(self):
        with pytest.raises(ValidationError):
            make_entry(category='')


class TestSnapshot:

    def _snapshot(self, manager_id='leiter', manager_rate=60.0):
        return ProvisionSnapshot(
            owner_rate=40.0,
            manager_rate=manager_rate,
            hierarchy=HierarchySnapshot(
                owner_id='berater', owner_name='Ben Berater',
                manager_id=manager_id, manager_name='Lena Leiter' if manager_id else None,
                captured_at='2025-03-15T09:30:00+00:00',
            ),
        )

    def test_no_snapshot(self, entry):
        assert entry.snapshot_consistency() is False
        assert entry.provision_snapshot is None

    def test_complete_snapshot(self, entry):
        entry.apply_snapshot(self._snapshot())
        assert entry.has_provision_snapshot
        assert entry.provision_snapshot.owner_rate == 40.0
        assert entry.owner_provision_after_tip_provider == 40.0

    def test_snapshot_without_manager(self, entry):
        entry.apply_snapshot(self._snapshot(manager_id=None, manager_rate=None))
        assert entry.has_provision_snapshot

    def test_partial_snapshot_raises(self):
        entry = make_entry(owner_provision_snapshot=40.0)
        with pytest.raises(SnapshotInconsistencyError):
            entry.snapshot_consistency()
        assert not entry.has_provision_snapshot

    def test_manager_rate_missing(self):
        entry = make_entry(
            owner_provision_snapshot=40.0,
            hierarchy_snapshot=HierarchySnapshot(owner_id='berater', owner_name='', manager_id='leiter'),
        )
        with pytest.raises(SnapshotInconsistencyError):
            entry.snapshot_consistency()

    def test_existing_snapshot_not_overwritten(self, entry):
        entry.apply_snapshot(self._snapshot())
        later = ProvisionSnapshot(
            owner_rate=55.0, manager_rate=70.0,
            hierarchy=HierarchySnapshot(owner_id='berater', owner_name='Ben Berater', manager_id='leiter'),
        )
        entry.apply_snapshot(later)
        assert entry.owner_provision_snapshot == 40.0
        assert entry.manager_provision_snapshot == 60.0

    def test_dict_round_trip_keeps_snapshot(self, entry):
        entry.apply_snapshot(self._snapshot())
        restored = RevenueEntry.from_dict(entry.to_dict())
        assert restored.has_provision_snapshot
        assert restored.hierarchy_snapshot.manager_id == 'leiter'
        assert restored.entry_date == entry.entry_date

    def test_invalid_snapshot_value(self):
        with pytest.raises(ValidationError):
            RevenueEntry.from_dict({
                'id': 'r-1', 'employeeId': 'berater', 'categoryType': 'bank',
                'provisionAmount': 100, 'ownerProvisionSnapshot': 'vierzig',
            })
