"""
Tests fuer die Kommandozeile (main.py).
"""

import json
import logging
import os

import pytest

import main as cli


DATA = {
    'hierarchy': {
        'nodes': [
            {'id': 'acme', 'name': 'ACME GmbH', 'parentId': None, 'type': 'root',
             'bankProvisionRate': 100, 'insuranceProvisionRate': 100, 'realEstateProvisionRate': 100},
            {'id': 'leiter', 'name': 'Lena Leiter', 'parentId': 'acme', 'bankProvisionRate': 60},
            {'id': 'berater', 'name': 'Ben Berater', 'parentId': 'leiter', 'bankProvisionRate': 40},
        ],
    },
    'revenues': [
        {'id': 'r-1', 'employeeId': 'berater', 'categoryType': 'bank', 'provisionAmount': 1000,
         'entryDate': '2025-03-10'},
        {'id': 'r-2', 'employeeId': 'berater', 'categoryType': 'energyContracts', 'provisionAmount': 100,
         'entryDate': '2025-04-01'},
    ],
}


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / 'daten.json'
    path.write_text(json.dumps(DATA), encoding='utf-8')
    return str(path)


@pytest.fixture(autouse=True)
def no_log_setup(monkeypatch):
    monkeypatch.setattr(cli, '_logging_ready', True)


def test_format_eur():
    assert cli.format_eur(1234.5) == '1.234,50 EUR'
    assert cli.format_eur(0) == '0,00 EUR'


def test_cascade(data_file, capsys):
    assert cli.main(['cascade', '--data', data_file, '--entry', 'r-1']) == 0
    out = capsys.readouterr().out
    assert 'Unternehmen' in out
    assert '400,00 EUR' in out
    assert out.index('Unternehmen') < out.index('Berater')


def test_cascade_json(data_file, capsys):
    assert cli.main(['cascade', '--data', data_file, '--entry', 'r-1', '--json']) == 0
    data = json.loads(capsys.readouterr().out)
    assert [p['amount'] for p in data['participants']] == [400.0, 200.0, 400.0]


def test_cascade_unknown_entry(data_file, capsys):
    assert cli.main(['cascade', '--data', data_file, '--entry', 'r-99']) == 1
    assert 'nicht gefunden' in capsys.readouterr().err


def test_report_month(data_file, capsys):
    code = cli.main(['report', '--data', data_file, '--employee', 'leiter', '--month', '2025-03', '--json'])
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data['period']['displayName'] == 'Maerz 2025'
    assert data['hierarchySummary']['totalProvision'] == 200.0
    assert data['totalSummary']['totalProvision'] == 200.0


def test_report_text(data_file, capsys):
    assert cli.main(['report', '--data', data_file, '--employee', 'berater']) == 0
    out = capsys.readouterr().out
    assert 'Provisionsabrechnung Ben Berater' in out
    assert 'Gesamt' in out


def test_report_unknown_employee(data_file, capsys):
    assert cli.main(['report', '--data', data_file, '--employee', 'fehlt']) == 1
    assert 'Fehler' in capsys.readouterr().err


def test_summary(data_file, capsys):
    assert cli.main(['summary', '--data', data_file]) == 0
    out = capsys.readouterr().out
    assert 'Lena Leiter' in out
    assert '1.100,00 EUR' in out


def test_migrate(data_file, tmp_path, capsys):
    target = tmp_path / 'migriert.json'
    assert cli.main(['migrate', '--data', data_file, '--output', str(target), '--legacy-mapping']) == 0
    assert '2 migriert' in capsys.readouterr().out

    migrated = json.loads(target.read_text(encoding='utf-8'))
    energy = next(r for r in migrated['revenues'] if r['id'] == 'r-2')
    assert energy['ownerProvisionSnapshot'] == 40.0
    assert energy['hierarchySnapshot']['managerId'] == 'leiter'

    # zweiter Lauf ohne Wirkung
    assert cli.main(['migrate', '--data', str(target), '--output', str(target)]) == 0
    assert '0 migriert, 2 bereits mit Snapshot' in capsys.readouterr().out


def test_migrate_dry_run(data_file, tmp_path, capsys):
    assert cli.main(['migrate', '--data', data_file, '--dry-run']) == 0
    assert '[DRY-RUN]' in capsys.readouterr().out
    assert not list(tmp_path.glob('*migriert*'))


def test_migrate_requires_output(data_file):
    assert cli.main(['migrate', '--data', data_file]) == 2


def test_missing_file(tmp_path):
    assert cli.main(['cascade', '--data', str(tmp_path / 'fehlt.json'), '--entry', 'r-1']) == 1


def test_no_command(capsys):
    assert cli.main([]) == 2


def test_setup_logging_writes_file(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, '_logging_ready', False)
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        cli.setup_logging(str(tmp_path))
        assert os.path.exists(tmp_path / cli.LOG_FILE_NAME)
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)
