"""
Fehlerklassen der Provisionsberechnung.

Jeder Fehler betrifft genau eine Berechnung (einen Umsatz, einen Knoten).
Batch-Verarbeitungen fangen ProvisionError pro Eintrag ab, protokollieren
ihn und rechnen mit den restlichen Eintraegen weiter.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ProvisionError(Exception):
    """Basisklasse aller fachlichen Fehler."""

    code = 'PROVISION_ERROR'

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': type(self).__name__,
            'code': self.code,
            'message': self.message,
            'timestamp': self.timestamp,
        }


class ValidationError(ProvisionError):
    """Ungueltiger Feldwert."""

    code = 'VALIDATION_ERROR'

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidRateError(ValidationError):
    """Provisionssatz ausserhalb [0, 100] - wird beim Aufbau des Baums abgelehnt."""

    code = 'INVALID_RATE'

    def __init__(self, field: str, value: Any, node_id: Optional[str] = None):
        where = f" (Knoten '{node_id}')" if node_id else ''
        super().__init__(f"Provisionssatz {field}={value!r} liegt nicht in [0, 100]{where}", field)
        self.value = value
        self.node_id = node_id


class HierarchyError(ProvisionError):
    """Strukturverletzung im Organigramm (Zyklus, zweite Wurzel, Tiefe)."""

    code = 'HIERARCHY_ERROR'


class NodeNotFoundError(ProvisionError):
    """Knoten-ID existiert nicht im Baum."""

    code = 'NOT_FOUND'

    def __init__(self, node_id: str, message: Optional[str] = None):
        super().__init__(message or f"HierarchyNode '{node_id}' nicht gefunden")
        self.node_id = node_id


class ParticipantNotFoundError(NodeNotFoundError):
    """Erfasser eines Umsatzes ist im uebergebenen Baum nicht vorhanden."""

    code = 'PARTICIPANT_NOT_FOUND'

    def __init__(self, node_id: str, entry_id: Optional[str] = None):
        suffix = f" (Umsatz '{entry_id}')" if entry_id else ''
        super().__init__(node_id, f"Erfasser '{node_id}' nicht im Organigramm{suffix}")
        self.entry_id = entry_id


class SnapshotInconsistencyError(ProvisionError):
    """Umsatz mit unvollstaendigem Provisions-Snapshot."""

    code = 'SNAPSHOT_INCONSISTENT'

    def __init__(self, entry_id: str, detail: str):
        super().__init__(f"Unvollstaendiger Provisions-Snapshot bei Umsatz '{entry_id}': {detail}")
        self.entry_id = entry_id


class InvalidStatusTransitionError(ValidationError):
    """Statuswechsel nicht erlaubt (abgeschlossene Status sind endgueltig)."""

    code = 'INVALID_STATUS_TRANSITION'

    def __init__(self, current: str, target: str):
        super().__init__(f"Statuswechsel {current} -> {target} nicht erlaubt", 'status')
        self.current = current
        self.target = target
