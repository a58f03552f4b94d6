"""
Gemeinsame Fixtures fuer die Provisions-Tests.

Standard-Organigramm:
    acme (Unternehmen, 100 %)
      └── leiter (Teamleiter, 60 %)
            ├── berater (Berater, 40 %)
            └── kollege (Berater, 30 %)

Ausfuehrung: python -m pytest src/tests -v
"""

import sys
import os
from datetime import datetime, timezone

import pytest

# src/ zum Path hinzufuegen
_src_dir = os.path.join(os.path.dirname(__file__), '..')
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

from domain.provision.hierarchy import HierarchyNode, HierarchyTree
from domain.provision.revenue import RevenueEntry


def make_node(node_id, name, parent_id, rate, node_type='person', **extra):
    return HierarchyNode(
        id=node_id,
        name=name,
        parent_id=parent_id,
        node_type=node_type,
        bank_provision_rate=rate,
        insurance_provision_rate=rate,
        real_estate_provision_rate=rate,
        **extra,
    )


def make_entry(entry_id='r-1', employee_id='berater', amount=1000.0, category='bank', **extra):
    extra.setdefault('entry_date', '2025-03-10')
    return RevenueEntry(
        id=entry_id,
        employee_id=employee_id,
        category_type=category,
        provision_amount=amount,
        **extra,
    )


FIXED_NOW = datetime(2025, 3, 15, 9, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def tree():
    return HierarchyTree([
        make_node('acme', 'ACME GmbH', None, 100.0, node_type='root'),
        make_node('leiter', 'Lena Leiter', 'acme', 60.0, node_type='team'),
        make_node('berater', 'Ben Berater', 'leiter', 40.0),
        make_node('kollege', 'Kai Kollege', 'leiter', 30.0),
    ], name='Vertrieb')


@pytest.fixture
def entry():
    return make_entry()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
