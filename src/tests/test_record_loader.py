"""
Tests fuer das Laden von Datensaetzen (JSON und Excel).
"""

import json

import openpyxl
import pytest

from domain.provision.errors import HierarchyError, ValidationError
from services.record_loader import dataset_from_dict, load_data, load_json, save_json


DATA = {
    'hierarchy': {
        'name': 'Vertrieb',
        'nodes': [
            {'id': 'acme', 'name': 'ACME GmbH', 'parentId': None, 'type': 'root',
             'bankProvisionRate': 100, 'insuranceProvisionRate': 100, 'realEstateProvisionRate': 100},
            {'id': 'leiter', 'name': 'Lena Leiter', 'parentId': 'acme', 'type': 'team',
             'bankProvisionRate': 60},
            {'id': 'berater', 'name': 'Ben Berater', 'parentId': 'leiter',
             'bankProvisionRate': 40},
        ],
    },
    'revenues': [
        {'id': 'r-1', 'employeeId': 'berater', 'categoryType': 'bank', 'provisionAmount': 1000,
         'entryDate': '2025-03-10'},
        {'id': 'r-2', 'employeeId': 'berater', 'categoryType': 'bank', 'provisionAmount': 'abc'},
    ],
}


def _write_json(path, data):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)
    return str(path)


class TestJson:

    def test_invalid_entries_are_collected(self, tmp_path):
        dataset = load_json(_write_json(tmp_path / 'daten.json', DATA))
        assert dataset.tree.node_count == 3
        assert [e.id for e in dataset.entries] == ['r-1']
        assert dataset.has_errors
        assert dataset.errors[0]['id'] == 'r-2'
        assert dataset.errors[0]['code'] == 'VALIDATION_ERROR'

    def test_malformed_rows_are_collected(self):
        data = dict(DATA, revenues=[
            DATA['revenues'][0],
            'kein Objekt',
            {'id': 'r-3', 'employeeId': 'berater', 'categoryType': 'bank', 'provisionAmount': 100,
             'tipProviders': 'tipp-1'},
            {'id': 'r-4', 'employeeId': 'berater', 'categoryType': 'bank', 'provisionAmount': 100,
             'tipProviders': [42]},
        ])
        dataset = dataset_from_dict(data)
        assert [e.id for e in dataset.entries] == ['r-1']
        assert [(err['index'], err['id']) for err in dataset.errors] == [(1, None), (2, 'r-3'), (3, 'r-4')]
        assert {err['code'] for err in dataset.errors} == {'VALIDATION_ERROR'}

    def test_save_and_reload(self, tmp_path):
        dataset = dataset_from_dict(DATA)
        target = tmp_path / 'out' / 'daten.json'
        save_json(dataset, str(target))
        reloaded = load_data(str(target))
        assert reloaded.tree.get_node('berater').bank_provision_rate == 40.0
        assert reloaded.find_entry('r-1').entry_date.isoformat() == '2025-03-10'

    def test_missing_hierarchy(self):
        with pytest.raises(ValidationError):
            dataset_from_dict({'revenues': []})

    def test_invalid_hierarchy_aborts(self):
        with pytest.raises(HierarchyError):
            dataset_from_dict({'hierarchy': [
                {'id': 'a', 'name': 'A', 'parentId': None},
                {'id': 'b', 'name': 'B', 'parentId': None},
            ]})

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValidationError):
            load_data(str(tmp_path / 'daten.csv'))


class TestWorkbook:

    def _workbook(self, path, with_hierarchy=True):
        wb = openpyxl.Workbook()
        ws = wb.active
        if with_hierarchy:
            ws.title = 'Hierarchie'
            ws.append(['ID', 'Name', 'Vorgesetzter', 'Typ', 'Bank %', 'Versicherung %', 'Immobilien %'])
            ws.append(['acme', 'ACME GmbH', None, 'root', 100, 100, 100])
            ws.append(['leiter', 'Lena Leiter', 'acme', 'team', 60, 60, 60])
            ws.append(['berater', 'Ben Berater', 'leiter', 'person', '40,0', 40, 40])
            ws = wb.create_sheet('Umsaetze')
        else:
            ws.title = 'Umsaetze'
        ws.append(['ID', 'Mitarbeiter', 'Kategorie', 'Betrag', 'Status', 'Datum',
                   'Tippgeber-ID', 'Tippgeber', 'Tippgeber %', 'Snapshot Erfasser %',
                   'Snapshot Vorgesetzter %', 'Snapshot Vorgesetzter-ID'])
        ws.append(['r-1', 'berater', 'bank', '1.000,50', 'submitted', '15.03.2025',
                   None, None, None, None, None, None])
        ws.append(['r-2', 'berater', 'bank', 500, 'provisioned', '20.03.2025',
                   'tipp-1', 'Tina Tipp', 10, 35, 60, 'leiter'])
        ws.append([None] * 12)
        wb.save(path)
        return str(path)

    def test_load_workbook(self, tmp_path):
        dataset = load_data(self._workbook(tmp_path / 'daten.xlsx'))
        assert dataset.tree.root_id == 'acme'
        assert dataset.tree.get_node('berater').bank_provision_rate == 40.0
        assert len(dataset.entries) == 2

        first = dataset.find_entry('r-1')
        assert first.provision_amount == 1000.5
        assert first.entry_date.isoformat() == '2025-03-15'
        assert not first.has_tip_provider
        assert not first.has_provision_snapshot

        second = dataset.find_entry('r-2')
        assert second.tip_providers[0].provision_percentage == 10.0
        assert second.has_provision_snapshot
        assert second.owner_provision_snapshot == 35.0
        assert second.hierarchy_snapshot.manager_id == 'leiter'

    def test_missing_hierarchy_sheet(self, tmp_path):
        with pytest.raises(ValidationError):
            load_data(self._workbook(tmp_path / 'daten.xlsx', with_hierarchy=False))
