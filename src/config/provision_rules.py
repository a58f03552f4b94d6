"""
Zentrale Provisions-Regeln.

Kategorie -> Provisionssatz-Feld, Rundung, Toleranzen und die Regeln,
welche Umsaetze in der Abrechnung ausgewiesen werden.

Das Kategorie-Mapping ist eine Tabelle; neue Provisionskategorien werden
hier ergaenzt, nicht im Kaskaden-Rechner.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# Provisionssatz-Felder eines Hierarchie-Knotens
# =============================================================================

RATE_FIELD_BANK = 'bank_provision_rate'
RATE_FIELD_INSURANCE = 'insurance_provision_rate'
RATE_FIELD_REAL_ESTATE = 'real_estate_provision_rate'

RATE_FIELDS = (RATE_FIELD_BANK, RATE_FIELD_INSURANCE, RATE_FIELD_REAL_ESTATE)


# =============================================================================
# Kategorie-Mapping
# =============================================================================

# Kaskaden-Ansicht: Energievertraege haben keinen eigenen Satz -> 0 %
CATEGORY_RATE_FIELDS: Dict[str, Optional[str]] = {
    'bank': RATE_FIELD_BANK,
    'insurance': RATE_FIELD_INSURANCE,
    'realEstate': RATE_FIELD_REAL_ESTATE,
    'propertyManagement': RATE_FIELD_REAL_ESTATE,
    'energyContracts': None,
}

# Altdaten-Migration: Energievertraege wurden dem Bank-Satz zugeordnet
LEGACY_CATEGORY_RATE_FIELDS: Dict[str, Optional[str]] = {
    **CATEGORY_RATE_FIELDS,
    'energyContracts': RATE_FIELD_BANK,
}

CATEGORY_DISPLAY_NAMES = {
    'bank': 'Bank',
    'insurance': 'Versicherung',
    'realEstate': 'Immobilien',
    'propertyManagement': 'Hausverwaltung',
    'energyContracts': 'Energievertraege',
}

STATUS_DISPLAY_NAMES = {
    'submitted': 'Eingereicht',
    'provisioned': 'Provisioniert',
    'rejected': 'Abgelehnt',
    'cancelled': 'Storniert',
}


class CategoryRateMapping:
    """Injizierbare Tabelle Kategorie -> Provisionssatz-Feld.

    Unbekannte Kategorien liefern kein Feld (Satz 0) und werden einmalig
    als Warnung protokolliert.
    """

    def __init__(self, table: Optional[Mapping[str, Optional[str]]] = None):
        source = CATEGORY_RATE_FIELDS if table is None else table
        for category, field_name in source.items():
            if field_name is not None and field_name not in RATE_FIELDS:
                raise ValueError(
                    f"Unbekanntes Provisionssatz-Feld '{field_name}' fuer Kategorie '{category}'"
                )
        self._table: Dict[str, Optional[str]] = dict(source)
        self._warned: set = set()

    @classmethod
    def legacy(cls) -> 'CategoryRateMapping':
        """Mapping des Migrations-Skripts (Energie -> Bank)."""
        return cls(LEGACY_CATEGORY_RATE_FIELDS)

    @property
    def categories(self) -> Tuple[str, ...]:
        return tuple(self._table)

    def field_for(self, category: str) -> Optional[str]:
        if category not in self._table:
            if category not in self._warned:
                self._warned.add(category)
                logger.warning(f"Kategorie '{category}' ohne Provisionssatz-Mapping, verwende 0 %")
            return None
        return self._table[category]

    def with_category(self, category: str, field_name: Optional[str]) -> 'CategoryRateMapping':
        """Neue Tabelle mit zusaetzlicher oder ueberschriebener Kategorie."""
        table = dict(self._table)
        table[category] = field_name
        return CategoryRateMapping(table)

    def __contains__(self, category: str) -> bool:
        return category in self._table

    def __repr__(self) -> str:
        return f"CategoryRateMapping({self._table!r})"


def get_category_display_name(category: str) -> str:
    return CATEGORY_DISPLAY_NAMES.get(category, category)


def get_status_display_name(status: str) -> str:
    return STATUS_DISPLAY_NAMES.get(status, status)


# =============================================================================
# Grenzen und Toleranzen
# =============================================================================

MIN_RATE = 0.0
MAX_RATE = 100.0

DEFAULT_VAT_RATE = 19.0

# Maximale Tiefe des Organigramms (Root = Ebene 0)
MAX_HIERARCHY_DEPTH = 10

# Erhaltungs-Invariante: Summe der Anteile == Umsatz (in EUR bzw. Prozentpunkten)
CURRENCY_TOLERANCE = 0.01
RATE_TOLERANCE = 0.01

RATE_PRECISION = 4


def round_currency(value: float) -> float:
    """Rundet kaufmaennisch auf Cent (ROUND_HALF_UP, ohne Float-Artefakte)."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def round_rate(value: float) -> float:
    """Entfernt Float-Rauschen aus Prozentsaetzen (39.99999 -> 40.0)."""
    return round(float(value), RATE_PRECISION)


# =============================================================================
# Abrechnungs-Ausschluss
# =============================================================================

# Quelle fuer WIFO-CSV-Importe (RevenueEntry.source)
WIFO_IMPORT_SOURCE = 'wifo_import'

# Kategorien, die der Produktgeber direkt an den Partner auszahlt
ALWAYS_EXCLUDED_CATEGORIES = ('insurance',)

# Ausnahmen fuer Mitarbeiter mit §34c/§34i GewO (Kategorie, Produkt klein geschrieben)
BILLING_INCLUSIONS = (
    ('bank', 'gewerbekredit'),
)
