"""
Organigramm: Knoten und Baum.

Der Baum ist eine Arena (id -> Knoten). Knoten verweisen nur per parent_id
auf ihren Vorgesetzten; die Kinder-Liste ist ein Index, den der Baum nach
jeder Strukturaenderung neu aufbaut. Jeder Aufbau prueft:
- genau eine Wurzel
- jeder parent_id existiert im Baum
- keine Zyklen, maximale Tiefe eingehalten

Struktur:
Root (Unternehmen)
  └── Division / Abteilung / Team
        └── Person (Berater)
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from config.provision_rules import MAX_HIERARCHY_DEPTH, MAX_RATE, MIN_RATE, RATE_FIELDS
from domain.provision.errors import (
    HierarchyError, InvalidRateError, NodeNotFoundError, ValidationError,
)

logger = logging.getLogger(__name__)


MAX_NAME_LENGTH = 200


# =============================================================================
# Enums und Wertobjekte
# =============================================================================

class NodeType(Enum):
    """Knotentyp im Organigramm."""
    ROOT = "root"
    DIVISION = "division"
    DEPARTMENT = "department"
    TEAM = "team"
    PERSON = "person"

    @classmethod
    def from_code(cls, code: Any) -> "NodeType":
        if isinstance(code, NodeType):
            return code
        if isinstance(code, dict):
            code = code.get('value')
        value = str(code or '').strip().lower()
        for item in cls:
            if item.value == value:
                return item
        raise ValidationError(f"Ungueltiger Knotentyp: {code!r}", 'type')

    def to_display(self) -> str:
        mapping = {
            NodeType.ROOT: "Organisation",
            NodeType.DIVISION: "Bereich",
            NodeType.DEPARTMENT: "Abteilung",
            NodeType.TEAM: "Team",
            NodeType.PERSON: "Person",
        }
        return mapping.get(self, self.value)


def validate_rate(value: Any, field_name: str, node_id: Optional[str] = None) -> float:
    """Prueft einen Provisionssatz. Fehlend/leer zaehlt als 0 %."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0.0
    if isinstance(value, bool):
        raise InvalidRateError(field_name, value, node_id)
    try:
        rate = float(str(value).replace(',', '.')) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise InvalidRateError(field_name, value, node_id)
    if math.isnan(rate) or rate < MIN_RATE or rate > MAX_RATE:
        raise InvalidRateError(field_name, value, node_id)
    return rate


def _first_present(d: Dict, *keys: str) -> Any:
    for key in keys:
        if key in d and d[key] is not None:
            return d[key]
    return None


@dataclass(frozen=True)
class CareerLevel:
    """Karrierestufe mit Standard-Provisionssaetzen."""
    rank_name: str = 'Mitarbeiter'
    level: int = 1
    bank_provision_rate: float = 0.0
    insurance_provision_rate: float = 0.0
    real_estate_provision_rate: float = 0.0
    description: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'level', max(1, min(10, int(self.level))))
        for rate_field in RATE_FIELDS:
            object.__setattr__(self, rate_field, validate_rate(getattr(self, rate_field), rate_field))

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> 'CareerLevel':
        if not d:
            return cls()
        return cls(
            rank_name=d.get('rankName') or d.get('rank_name') or 'Mitarbeiter',
            level=int(d.get('level') or 1),
            bank_provision_rate=_first_present(d, 'bankProvisionRate', 'bank_provision_rate'),
            insurance_provision_rate=_first_present(d, 'insuranceProvisionRate', 'insurance_provision_rate'),
            real_estate_provision_rate=_first_present(d, 'realEstateProvisionRate', 'real_estate_provision_rate'),
            description=d.get('description', '') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rankName': self.rank_name,
            'level': self.level,
            'bankProvisionRate': self.bank_provision_rate,
            'insuranceProvisionRate': self.insurance_provision_rate,
            'realEstateProvisionRate': self.real_estate_provision_rate,
            'description': self.description,
        }


# Vordefinierte Karrierestufen (Saetze werden pro Organisation gepflegt)
CAREER_LEVELS = {
    'TRAINEE': {'rankName': 'Trainee', 'level': 1, 'description': 'In Ausbildung'},
    'JUNIOR': {'rankName': 'Junior Berater', 'level': 2, 'description': 'Junior-Ebene'},
    'CONSULTANT': {'rankName': 'Berater', 'level': 3, 'description': 'Standard-Berater'},
    'SENIOR': {'rankName': 'Senior Berater', 'level': 4, 'description': 'Erfahrener Berater'},
    'TEAM_LEAD': {'rankName': 'Teamleiter', 'level': 5, 'description': 'Fuehrt kleines Team'},
    'MANAGER': {'rankName': 'Manager', 'level': 6, 'description': 'Bereichsleiter'},
    'SENIOR_MANAGER': {'rankName': 'Senior Manager', 'level': 7, 'description': 'Mehrere Bereiche'},
    'DIRECTOR': {'rankName': 'Direktor', 'level': 8, 'description': 'Geschaeftsbereich'},
    'MANAGING_DIRECTOR': {'rankName': 'Geschaeftsfuehrer', 'level': 10, 'description': 'Unternehmensfuehrung'},
}


# =============================================================================
# HierarchyNode
# =============================================================================

@dataclass(frozen=True)
class HierarchyNode:
    """Knoten im Organigramm mit je einem Provisionssatz pro Kategorie-Familie."""
    id: str
    name: str
    parent_id: Optional[str] = None
    node_type: NodeType = NodeType.PERSON
    bank_provision_rate: float = 0.0
    insurance_provision_rate: float = 0.0
    real_estate_provision_rate: float = 0.0
    order: int = 0
    email: str = ''
    career_level: Optional[CareerLevel] = None

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValidationError("Knoten-ID darf nicht leer sein", 'id')
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Knotenname darf nicht leer sein", 'name')
        if len(self.name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Knotenname laenger als {MAX_NAME_LENGTH} Zeichen", 'name')
        if self.parent_id == self.id:
            raise HierarchyError(f"Knoten '{self.id}' kann nicht sein eigener Vorgesetzter sein")
        object.__setattr__(self, 'node_type', NodeType.from_code(self.node_type))
        for rate_field in RATE_FIELDS:
            object.__setattr__(
                self, rate_field, validate_rate(getattr(self, rate_field), rate_field, self.id)
            )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def rate_for_field(self, field_name: Optional[str]) -> float:
        """Satz eines Provisionssatz-Felds; None (kein Feld) ergibt 0 %."""
        if field_name is None:
            return 0.0
        if field_name not in RATE_FIELDS:
            raise ValidationError(f"Unbekanntes Provisionssatz-Feld: {field_name}", field_name)
        return getattr(self, field_name)

    @property
    def rates(self) -> Dict[str, float]:
        return {rate_field: getattr(self, rate_field) for rate_field in RATE_FIELDS}

    def with_rates(self, **rates: float) -> 'HierarchyNode':
        unknown = set(rates) - set(RATE_FIELDS)
        if unknown:
            raise ValidationError(f"Unbekannte Provisionssatz-Felder: {', '.join(sorted(unknown))}")
        return replace(self, **rates)

    def apply_career_level(self, level: CareerLevel) -> 'HierarchyNode':
        """Kopie mit Karrierestufe und deren Standardsaetzen."""
        return replace(
            self,
            career_level=level,
            bank_provision_rate=level.bank_provision_rate,
            insurance_provision_rate=level.insurance_provision_rate,
            real_estate_provision_rate=level.real_estate_provision_rate,
        )

    @classmethod
    def from_dict(cls, d: Dict) -> 'HierarchyNode':
        node_id = d.get('id')
        parent_id = _first_present(d, 'parentId', 'parent_id')
        career = _first_present(d, 'careerLevel', 'career_level')
        return cls(
            id=str(node_id) if node_id is not None else '',
            name=d.get('name', '') or '',
            parent_id=str(parent_id) if parent_id not in (None, '') else None,
            node_type=_first_present(d, 'type', 'nodeType', 'node_type') or NodeType.PERSON,
            bank_provision_rate=_first_present(d, 'bankProvisionRate', 'bankProvision', 'bank_provision_rate'),
            insurance_provision_rate=_first_present(
                d, 'insuranceProvisionRate', 'insuranceProvision', 'insurance_provision_rate'),
            real_estate_provision_rate=_first_present(
                d, 'realEstateProvisionRate', 'realEstateProvision', 'real_estate_provision_rate'),
            order=int(d.get('order') or 0),
            email=d.get('email', '') or '',
            career_level=CareerLevel.from_dict(career) if career else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'parentId': self.parent_id,
            'type': self.node_type.value,
            'bankProvisionRate': self.bank_provision_rate,
            'insuranceProvisionRate': self.insurance_provision_rate,
            'realEstateProvisionRate': self.real_estate_provision_rate,
            'order': self.order,
            'email': self.email,
            'careerLevel': self.career_level.to_dict() if self.career_level else None,
        }


# =============================================================================
# HierarchyTree
# =============================================================================

class HierarchyTree:
    """Indexierte Sammlung aller Knoten eines Organigramms.

    Usage:
        tree = HierarchyTree([root, manager, berater])
        tree.get_ancestors('berater')   # [manager, root]
        tree.move_node('berater', 'other-manager')
    """

    def __init__(
        self,
        nodes: Iterable[HierarchyNode] = (),
        name: str = 'Organigramm',
        max_depth: int = MAX_HIERARCHY_DEPTH,
    ):
        self.name = name
        self._max_depth = max_depth
        self._nodes: Dict[str, HierarchyNode] = {}
        self._children: Dict[str, List[str]] = {}
        self._root_id: Optional[str] = None
        for node in nodes:
            if node.id in self._nodes:
                raise HierarchyError(f"Knoten-ID '{node.id}' ist doppelt vergeben")
            self._nodes[node.id] = node
        self._rebuild()

    # -------------------------------------------------------------------------
    # Index und Validierung
    # -------------------------------------------------------------------------

    def _rebuild(self, nodes: Optional[Dict[str, HierarchyNode]] = None) -> None:
        """Baut Kinder-Index und Wurzel neu auf und validiert die Struktur.

        Bei Fehlern bleibt der bisherige Zustand unveraendert.
        """
        candidate = self._nodes if nodes is None else nodes

        roots = [n.id for n in candidate.values() if n.parent_id is None]
        if candidate and len(roots) != 1:
            raise HierarchyError(f"Organigramm braucht genau eine Wurzel, gefunden: {len(roots)}")

        children: Dict[str, List[str]] = {node_id: [] for node_id in candidate}
        for node in candidate.values():
            if node.parent_id is None:
                continue
            if node.parent_id not in candidate:
                raise HierarchyError(
                    f"Vorgesetzter '{node.parent_id}' von Knoten '{node.id}' existiert nicht"
                )
            children[node.parent_id].append(node.id)

        for child_ids in children.values():
            child_ids.sort(key=lambda cid: (candidate[cid].order, candidate[cid].name))

        # Zyklen und Tiefe: jede Kette muss innerhalb max_depth die Wurzel erreichen
        depth_cache: Dict[str, int] = {}
        for node_id in candidate:
            path = []
            current = node_id
            while current is not None and current not in depth_cache:
                if current in path:
                    raise HierarchyError(f"Zyklus im Organigramm bei Knoten '{current}'")
                path.append(current)
                current = candidate[current].parent_id
            base = -1 if current is None else depth_cache[current]
            for offset, path_id in enumerate(reversed(path), start=1):
                depth_cache[path_id] = base + offset
            if depth_cache[node_id] > self._max_depth:
                raise HierarchyError(
                    f"Maximale Hierarchietiefe von {self._max_depth} bei Knoten '{node_id}' ueberschritten"
                )

        self._nodes = candidate
        self._children = children
        self._root_id = roots[0] if roots else None

    # -------------------------------------------------------------------------
    # Abfragen
    # -------------------------------------------------------------------------

    @property
    def root(self) -> Optional[HierarchyNode]:
        return self._nodes.get(self._root_id) if self._root_id else None

    @property
    def root_id(self) -> Optional[str]:
        return self._root_id

    @property
    def nodes(self) -> List[HierarchyNode]:
        return list(self._nodes.values())

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def find_node(self, node_id: Optional[str]) -> Optional[HierarchyNode]:
        """Knoten oder None - O(1)."""
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def get_node(self, node_id: str) -> HierarchyNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_parent(self, node_id: str) -> Optional[HierarchyNode]:
        node = self.get_node(node_id)
        return self._nodes.get(node.parent_id) if node.parent_id else None

    def get_children(self, node_id: str) -> List[HierarchyNode]:
        """Direkte Untergebene, sortiert nach order."""
        self.get_node(node_id)
        return [self._nodes[cid] for cid in self._children.get(node_id, [])]

    def get_ancestors(self, node_id: str) -> List[HierarchyNode]:
        """Vorgesetztenkette, naechster Vorgesetzter zuerst, Wurzel zuletzt."""
        ancestors = []
        current = self.get_node(node_id)
        while current.parent_id is not None:
            current = self._nodes[current.parent_id]
            ancestors.append(current)
        return ancestors

    def get_path_to_root(self, node_id: str) -> List[HierarchyNode]:
        """[Knoten, Vorgesetzter, ..., Wurzel]."""
        return [self.get_node(node_id)] + self.get_ancestors(node_id)

    def get_descendants(self, node_id: str) -> List[HierarchyNode]:
        """Alle Untergebenen (Tiefensuche, Geschwister nach order)."""
        return [node for node, _depth in self.iter_depth_first(node_id)][1:]

    def get_siblings(self, node_id: str) -> List[HierarchyNode]:
        node = self.get_node(node_id)
        if node.parent_id is None:
            return []
        return [n for n in self.get_children(node.parent_id) if n.id != node_id]

    def get_depth(self, node_id: str) -> int:
        return len(self.get_ancestors(node_id))

    def max_depth(self) -> int:
        return max((self.get_depth(node_id) for node_id in self._nodes), default=0)

    def is_ancestor(self, ancestor_id: str, node_id: str) -> bool:
        return any(a.id == ancestor_id for a in self.get_ancestors(node_id))

    def iter_depth_first(self, start_id: Optional[str] = None) -> Iterator[Tuple[HierarchyNode, int]]:
        """Liefert (Knoten, Tiefe relativ zum Start) in Tiefensuche."""
        start = start_id or self._root_id
        if start is None:
            return
        stack = [(self.get_node(start), 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            for child_id in reversed(self._children.get(node.id, [])):
                stack.append((self._nodes[child_id], depth + 1))

    def traverse(
        self, callback: Callable[[HierarchyNode, int], None], start_id: Optional[str] = None
    ) -> None:
        """Ruft callback(node, depth) fuer jeden Knoten in Tiefensuche auf."""
        for node, depth in self.iter_depth_first(start_id):
            callback(node, depth)

    def find(self, predicate: Callable[[HierarchyNode], bool]) -> Optional[HierarchyNode]:
        return next((n for n in self._nodes.values() if predicate(n)), None)

    def filter(self, predicate: Callable[[HierarchyNode], bool]) -> List[HierarchyNode]:
        return [n for n in self._nodes.values() if predicate(n)]

    # -------------------------------------------------------------------------
    # Aenderungen
    # -------------------------------------------------------------------------

    def add_node(self, node: HierarchyNode) -> HierarchyNode:
        if node.id in self._nodes:
            raise HierarchyError(f"Knoten-ID '{node.id}' existiert bereits")
        if node.parent_id is not None and node.parent_id not in self._nodes:
            raise NodeNotFoundError(node.parent_id)
        if node.parent_id is None and self._root_id is not None:
            raise HierarchyError("Organigramm hat bereits eine Wurzel")
        nodes = dict(self._nodes)
        nodes[node.id] = node
        self._rebuild(nodes)
        logger.debug(f"Knoten hinzugefuegt: {node.id} unter {node.parent_id}")
        return node

    def move_node(self, node_id: str, new_parent_id: str) -> HierarchyNode:
        """Haengt einen Knoten um (inkl. Teilbaum). Zyklen werden abgelehnt."""
        node = self.get_node(node_id)
        if node_id == new_parent_id:
            raise HierarchyError("Knoten kann nicht unter sich selbst verschoben werden")
        if node.is_root:
            raise HierarchyError("Wurzel kann nicht verschoben werden")
        self.get_node(new_parent_id)
        if self.is_ancestor(node_id, new_parent_id):
            raise HierarchyError(
                f"Verschieben von '{node_id}' unter '{new_parent_id}' wuerde einen Zyklus erzeugen"
            )
        moved = replace(node, parent_id=new_parent_id)
        nodes = dict(self._nodes)
        nodes[node_id] = moved
        self._rebuild(nodes)
        logger.info(f"Knoten verschoben: {node_id} -> {new_parent_id}")
        return moved

    def remove_node(self, node_id: str) -> None:
        """Entfernt einen Knoten; Untergebene ruecken eine Ebene nach oben."""
        node = self.get_node(node_id)
        child_ids = list(self._children.get(node_id, []))
        if node.is_root and child_ids:
            raise HierarchyError("Wurzel mit Untergebenen kann nicht entfernt werden")
        nodes = dict(self._nodes)
        del nodes[node_id]
        for child_id in child_ids:
            nodes[child_id] = replace(nodes[child_id], parent_id=node.parent_id)
        self._rebuild(nodes)
        logger.info(f"Knoten entfernt: {node_id} ({len(child_ids)} Untergebene umgehaengt)")

    def update_node(self, node_id: str, **changes: Any) -> HierarchyNode:
        """Aendert Stammdaten oder Saetze. Struktur nur ueber move_node."""
        if 'id' in changes or 'parent_id' in changes:
            raise HierarchyError("id/parent_id nicht ueber update_node aenderbar, move_node verwenden")
        updated = replace(self.get_node(node_id), **changes)
        nodes = dict(self._nodes)
        nodes[node_id] = updated
        self._rebuild(nodes)
        return updated

    def update_rates(self, node_id: str, **rates: float) -> HierarchyNode:
        updated = self.get_node(node_id).with_rates(**rates)
        nodes = dict(self._nodes)
        nodes[node_id] = updated
        self._rebuild(nodes)
        logger.info(f"Provisionssaetze geaendert: {node_id} {rates}")
        return updated

    def reorder_children(self, parent_id: str, child_ids: List[str]) -> None:
        current = self._children.get(parent_id)
        if current is None:
            raise NodeNotFoundError(parent_id)
        if sorted(current) != sorted(child_ids):
            raise ValidationError("Kinder-IDs stimmen nicht mit den vorhandenen Untergebenen ueberein")
        nodes = dict(self._nodes)
        for index, child_id in enumerate(child_ids):
            nodes[child_id] = replace(nodes[child_id], order=index)
        self._rebuild(nodes)

    # -------------------------------------------------------------------------
    # Serialisierung
    # -------------------------------------------------------------------------

    def copy(self) -> 'HierarchyTree':
        return HierarchyTree(self._nodes.values(), name=self.name, max_depth=self._max_depth)

    @classmethod
    def from_dict(cls, d: Any) -> 'HierarchyTree':
        """Akzeptiert {'name', 'nodes': [...]}, {'nodes': {id: {...}}} oder eine Knotenliste."""
        if isinstance(d, list):
            raw_nodes, name = d, 'Organigramm'
        else:
            raw_nodes = d.get('nodes') or []
            name = d.get('name') or 'Organigramm'
            if isinstance(raw_nodes, dict):
                raw_nodes = [{'id': key, **value} for key, value in raw_nodes.items()]
        return cls([HierarchyNode.from_dict(n) for n in raw_nodes], name=name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'rootId': self._root_id,
            'nodes': [node.to_dict() for node, _depth in self.iter_depth_first()],
        }

    def __repr__(self) -> str:
        return f"HierarchyTree(name={self.name!r}, nodes={len(self._nodes)}, root={self._root_id!r})"
