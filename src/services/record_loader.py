"""
Datensaetze laden: Organigramm und Umsaetze aus JSON oder Excel.

JSON-Format:
    {"hierarchy": {"name": ..., "nodes": [...]}, "revenues": [...]}

Excel-Format (.xlsx, Zeile 1 = Header):
    Sheet 'Hierarchie': ID, Name, Vorgesetzter, Typ, Bank %, Versicherung %, Immobilien %, ...
    Sheet 'Umsaetze':   ID, Mitarbeiter, Kategorie, Betrag, Status, Datum, ...
Unbekannte Header werden unveraendert als Schluessel uebernommen, camelCase-
Header der gespeicherten Datensaetze funktionieren daher direkt.

Fehlerhafte Umsatz-Zeilen werden gesammelt und uebersprungen; ein
ungueltiges Organigramm bricht das Laden ab.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import openpyxl

from domain.provision.errors import ProvisionError, ValidationError
from domain.provision.hierarchy import HierarchyTree
from domain.provision.revenue import RevenueEntry

logger = logging.getLogger(__name__)


HIERARCHY_SHEET = 'Hierarchie'
REVENUE_SHEET = 'Umsaetze'

HIERARCHY_HEADERS = {
    'id': 'id',
    'name': 'name',
    'vorgesetzter': 'parentId',
    'typ': 'type',
    'bank %': 'bankProvisionRate',
    'versicherung %': 'insuranceProvisionRate',
    'immobilien %': 'realEstateProvisionRate',
    'reihenfolge': 'order',
    'e-mail': 'email',
}

REVENUE_HEADERS = {
    'id': 'id',
    'mitarbeiter': 'employeeId',
    'kategorie': 'categoryType',
    'betrag': 'provisionAmount',
    'status': 'status',
    'datum': 'entryDate',
    'kunde': 'customerName',
    'kundennummer': 'customerNumber',
    'produkt': 'productName',
    'produktgeber': 'providerName',
    'vertragsnummer': 'contractNumber',
    'ust': 'hasVAT',
    'ust-satz': 'vatRate',
    'tippgeber-id': 'tipProviderId',
    'tippgeber': 'tipProviderName',
    'tippgeber %': 'tipProviderProvisionPercentage',
    'quelle': 'source',
    'quellreferenz': 'sourceReference',
    'manuelle abrechnung': 'manualBilling',
    'snapshot erfasser %': 'ownerProvisionSnapshot',
    'snapshot vorgesetzter %': 'managerProvisionSnapshot',
    'snapshot vorgesetzter-id': 'snapshotManagerId',
    'snapshot vorgesetzter': 'snapshotManagerName',
    'snapshot erfasst am': 'snapshotCapturedAt',
}

BOOL_FIELDS = {'hasVAT', 'manualBilling'}


# =============================================================================
# Zell-Helfer
# =============================================================================

def _safe_str(val) -> Optional[str]:
    if val is None:
        return None
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    s = str(val).strip()
    return s if s else None


def _safe_float(val) -> Optional[float]:
    if val is None:
        return None
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    s = str(val).strip()
    if not s or s == '-':
        return None
    s = s.replace(' ', '').replace('€', '').replace('EUR', '').replace('%', '')
    if ',' in s and '.' in s:
        s = s.replace('.', '').replace(',', '.')
    elif ',' in s:
        s = s.replace(',', '.')
    try:
        return float(s)
    except ValueError:
        return None


def _safe_bool(val) -> bool:
    if isinstance(val, bool):
        return val
    if val is None:
        return False
    return str(val).strip().lower() in ('ja', 'yes', '1', 'true', 'x')


def _safe_date(val) -> Optional[str]:
    """Datum als YYYY-MM-DD."""
    if val is None:
        return None
    if isinstance(val, (datetime, date)):
        return val.strftime('%Y-%m-%d')
    s = str(val).strip()
    if not s:
        return None
    for fmt in ('%d.%m.%Y', '%d.%m.%y', '%Y-%m-%d', '%d/%m/%Y'):
        try:
            return datetime.strptime(s, fmt).strftime('%Y-%m-%d')
        except ValueError:
            continue
    return None


NUMERIC_FIELDS = {
    'bankProvisionRate', 'insuranceProvisionRate', 'realEstateProvisionRate',
    'provisionAmount', 'vatRate', 'tipProviderProvisionPercentage',
    'ownerProvisionSnapshot', 'managerProvisionSnapshot',
}


def _convert_cell(field_name: str, val: Any) -> Any:
    if field_name in BOOL_FIELDS:
        return _safe_bool(val)
    if field_name in NUMERIC_FIELDS:
        number = _safe_float(val)
        # nicht lesbare Zahlen unveraendert durchreichen, die Validierung meldet sie
        return number if number is not None or val is None else val
    if field_name == 'order':
        number = _safe_float(val)
        return int(number) if number is not None else 0
    if field_name in ('entryDate', 'snapshotCapturedAt'):
        return _safe_date(val)
    return _safe_str(val)


# =============================================================================
# Ergebnis
# =============================================================================

@dataclass
class ProvisionDataSet:
    """Geladener Datenbestand."""
    tree: HierarchyTree
    entries: List[RevenueEntry] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    source_path: str = ''

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def find_entry(self, entry_id: str) -> Optional[RevenueEntry]:
        return next((e for e in self.entries if e.id == entry_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hierarchy': self.tree.to_dict(),
            'revenues': [entry.to_dict() for entry in self.entries],
        }


def dataset_from_dict(data: Dict[str, Any], source_path: str = '') -> ProvisionDataSet:
    """Baut Baum und Umsaetze; fehlerhafte Umsaetze landen in errors."""
    hierarchy = data.get('hierarchy') or data.get('tree') or data.get('nodes')
    if hierarchy is None:
        raise ValidationError("Datensatz ohne Organigramm ('hierarchy')", 'hierarchy')
    tree = HierarchyTree.from_dict(hierarchy)

    dataset = ProvisionDataSet(tree=tree, source_path=source_path)
    raw_entries = data.get('revenues') or data.get('entries') or []
    for index, raw in enumerate(raw_entries):
        try:
            dataset.entries.append(RevenueEntry.from_dict(raw))
        except ProvisionError as e:
            raw_id = raw.get('id') if isinstance(raw, dict) else None
            dataset.errors.append({'index': index, 'id': raw_id, **e.to_dict()})
            logger.warning(f"Umsatz #{index} ({raw_id}) ungueltig: {e.message}")

    logger.info(
        f"Datensatz geladen: {tree.node_count} Knoten, {len(dataset.entries)} Umsaetze, "
        f"{len(dataset.errors)} Fehler"
    )
    return dataset


# =============================================================================
# JSON
# =============================================================================

def load_json(path: str) -> ProvisionDataSet:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return dataset_from_dict(data, source_path=str(path))


def save_json(dataset: ProvisionDataSet, path: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, 'w', encoding='utf-8') as f:
        json.dump(dataset.to_dict(), f, ensure_ascii=False, indent=2)
    logger.info(f"Datensatz gespeichert: {target}")


# =============================================================================
# Excel
# =============================================================================

def _find_sheet(wb, sheet_name: str):
    for sn in wb.sheetnames:
        if sn == sheet_name or sn.lower() == sheet_name.lower():
            return wb[sn]
    return None


def _read_sheet(ws, header_map: Dict[str, str]) -> List[Dict[str, Any]]:
    """Zeilen als Dicts; Header ueber header_map auf Datensatz-Schluessel abgebildet."""
    rows = ws.iter_rows(values_only=True)
    header_row = next(rows, None)
    if header_row is None:
        return []
    headers = []
    for cell in header_row:
        label = str(cell or '').strip()
        headers.append(header_map.get(label.lower(), label))

    records = []
    for values in rows:
        if all(v is None or str(v).strip() == '' for v in values):
            continue
        record = {}
        for key, val in zip(headers, values):
            if key:
                record[key] = _convert_cell(key, val)
        records.append(record)
    return records


def _revenue_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Snapshot-Spalten zu einem hierarchySnapshot zusammenfassen."""
    manager_id = row.pop('snapshotManagerId', None)
    manager_name = row.pop('snapshotManagerName', None)
    captured_at = row.pop('snapshotCapturedAt', None)
    if row.get('ownerProvisionSnapshot') is not None:
        row['hierarchySnapshot'] = {
            'ownerId': row.get('employeeId'),
            'ownerName': '',
            'managerId': manager_id,
            'managerName': manager_name,
            'capturedAt': captured_at or '',
        }
    return row


def load_workbook(path: str) -> ProvisionDataSet:
    """Liest die Sheets 'Hierarchie' und 'Umsaetze' einer .xlsx-Datei."""
    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        ws_hierarchy = _find_sheet(wb, HIERARCHY_SHEET)
        if ws_hierarchy is None:
            raise ValidationError(f"Sheet '{HIERARCHY_SHEET}' nicht gefunden in {path}", 'hierarchy')
        nodes = _read_sheet(ws_hierarchy, HIERARCHY_HEADERS)

        ws_revenue = _find_sheet(wb, REVENUE_SHEET)
        if ws_revenue is None:
            logger.warning(f"Sheet '{REVENUE_SHEET}' nicht gefunden in {path}")
            revenues = []
        else:
            revenues = [_revenue_record(row) for row in _read_sheet(ws_revenue, REVENUE_HEADERS)]
    finally:
        wb.close()

    logger.info(f"Excel gelesen: {len(nodes)} Knoten, {len(revenues)} Umsatz-Zeilen aus {path}")
    return dataset_from_dict({'hierarchy': {'nodes': nodes}, 'revenues': revenues}, source_path=str(path))


def load_data(path: str) -> ProvisionDataSet:
    """Laedt .json oder .xlsx anhand der Dateiendung."""
    suffix = Path(path).suffix.lower()
    if suffix == '.json':
        return load_json(path)
    if suffix in ('.xlsx', '.xlsm'):
        return load_workbook(path)
    raise ValidationError(f"Nicht unterstuetztes Dateiformat: {suffix or path}", 'path')
