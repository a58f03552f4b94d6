"""
Tests fuer das Organigramm (HierarchyNode, HierarchyTree).

Ausfuehrung: python -m pytest src/tests/test_hierarchy.py -v
"""

import pytest

from conftest import make_node
from domain.provision.errors import HierarchyError, InvalidRateError, NodeNotFoundError, ValidationError
from domain.provision.hierarchy import CareerLevel, HierarchyNode, HierarchyTree, NodeType


# ==============================================================================
# HierarchyNode
# ==============================================================================

class TestHierarchyNode:

    def test_rate_above_100_rejected(self):
        with pytest.raises(InvalidRateError) as exc:
            make_node('x', 'X', 'acme', 120.0)
        assert exc.value.node_id == 'x'

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidRateError):
            HierarchyNode(id='x', name='X', bank_provision_rate=-1)

    def test_missing_rate_counts_as_zero(self):
        node = HierarchyNode(id='x', name='X', insurance_provision_rate=None)
        assert node.insurance_provision_rate == 0.0

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            HierarchyNode(id='x', name='  ')

    def test_rate_for_unknown_field(self):
        node = make_node('x', 'X', None, 10.0)
        assert node.rate_for_field(None) == 0.0
        with pytest.raises(ValidationError):
            node.rate_for_field('energy_provision_rate')

    def test_from_dict_accepts_short_rate_keys(self):
        node = HierarchyNode.from_dict({
            'id': 'b1', 'name': 'Berater', 'parentId': 'root',
            'bankProvision': 35, 'insuranceProvisionRate': '20,5', 'type': 'person',
        })
        assert node.bank_provision_rate == 35.0
        assert node.insurance_provision_rate == 20.5
        assert node.real_estate_provision_rate == 0.0
        assert node.node_type is NodeType.PERSON

    def test_unknown_node_type(self):
        with pytest.raises(ValidationError):
            HierarchyNode(id='x', name='X', node_type='abteilungsgruppe')

    def test_apply_career_level(self):
        level = CareerLevel(rank_name='Senior Berater', level=4, bank_provision_rate=45)
        node = make_node('x', 'X', 'acme', 10.0).apply_career_level(level)
        assert node.bank_provision_rate == 45.0
        assert node.insurance_provision_rate == 0.0
        assert node.career_level.rank_name == 'Senior Berater'


# ==============================================================================
# HierarchyTree - Aufbau
# ==============================================================================

class TestTreeValidation:

    def test_two_roots_rejected(self):
        with pytest.raises(HierarchyError):
            HierarchyTree([make_node('a', 'A', None, 100), make_node('b', 'B', None, 100)])

    def test_unknown_parent_rejected(self):
        with pytest.raises(HierarchyError):
            HierarchyTree([make_node('a', 'A', None, 100), make_node('b', 'B', 'fehlt', 10)])

    def test_cycle_rejected(self):
        with pytest.raises(HierarchyError):
            HierarchyTree([
                make_node('root', 'Root', None, 100),
                make_node('a', 'A', 'b', 10),
                make_node('b', 'B', 'a', 10),
            ])

    def test_duplicate_id_rejected(self):
        with pytest.raises(HierarchyError):
            HierarchyTree([make_node('a', 'A', None, 100), make_node('a', 'A2', 'a', 10)])

    def test_max_depth(self):
        nodes = [make_node('n0', 'N0', None, 100)]
        for i in range(1, 4):
            nodes.append(make_node(f'n{i}', f'N{i}', f'n{i - 1}', 10))
        with pytest.raises(HierarchyError):
            HierarchyTree(nodes, max_depth=2)
        assert HierarchyTree(nodes, max_depth=3).max_depth() == 3

    def test_from_dict_with_node_map(self):
        tree = HierarchyTree.from_dict({
            'name': 'Vertrieb',
            'nodes': {
                'acme': {'name': 'ACME', 'parentId': None, 'type': 'root', 'bankProvisionRate': 100},
                'b1': {'name': 'Berater', 'parentId': 'acme', 'bankProvisionRate': 40},
            },
        })
        assert tree.root_id == 'acme'
        assert tree.get_node('b1').bank_provision_rate == 40.0


# ==============================================================================
# HierarchyTree - Abfragen
# ==============================================================================

class TestTreeQueries:

    def test_root(self, tree):
        assert tree.root.id == 'acme'
        assert len(tree) == 4
        assert 'berater' in tree

    def test_ancestors_nearest_first(self, tree):
        assert [n.id for n in tree.get_ancestors('berater')] == ['leiter', 'acme']
        assert [n.id for n in tree.get_path_to_root('berater')] == ['berater', 'leiter', 'acme']
        assert tree.get_ancestors('acme') == []

    def test_children_sorted_by_order(self):
        tree = HierarchyTree([
            make_node('r', 'Root', None, 100),
            make_node('b', 'B', 'r', 10, order=2),
            make_node('a', 'A', 'r', 10, order=1),
        ])
        assert [n.id for n in tree.get_children('r')] == ['a', 'b']

    def test_descendants_and_depth(self, tree):
        assert {n.id for n in tree.get_descendants('leiter')} == {'berater', 'kollege'}
        assert tree.get_depth('berater') == 2
        assert tree.is_ancestor('acme', 'kollege')
        assert not tree.is_ancestor('berater', 'kollege')

    def test_siblings(self, tree):
        assert [n.id for n in tree.get_siblings('berater')] == ['kollege']
        assert tree.get_siblings('acme') == []

    def test_unknown_node(self, tree):
        assert tree.find_node('fehlt') is None
        with pytest.raises(NodeNotFoundError):
            tree.get_node('fehlt')

    def test_traverse_visits_all_with_depth(self, tree):
        visited = []
        tree.traverse(lambda node, depth: visited.append((node.id, depth)))
        assert visited[0] == ('acme', 0)
        assert ('leiter', 1) in visited
        assert ('berater', 2) in visited
        assert len(visited) == 4

    def test_find_and_filter(self, tree):
        assert tree.find(lambda n: n.name.startswith('Kai')).id == 'kollege'
        assert {n.id for n in tree.filter(lambda n: n.bank_provision_rate < 50)} == {'berater', 'kollege'}


# ==============================================================================
# HierarchyTree - Aenderungen
# ==============================================================================

class TestTreeMutations:

    def test_add_node(self, tree):
        tree.add_node(make_node('neu', 'Neu', 'kollege', 20))
        assert tree.get_parent('neu').id == 'kollege'

    def test_add_second_root_rejected(self, tree):
        with pytest.raises(HierarchyError):
            tree.add_node(make_node('zweite', 'Zweite Wurzel', None, 100))

    def test_move_node(self, tree):
        tree.move_node('berater', 'acme')
        assert [n.id for n in tree.get_ancestors('berater')] == ['acme']

    def test_move_under_own_descendant_rejected(self, tree):
        with pytest.raises(HierarchyError):
            tree.move_node('leiter', 'berater')
        # Baum unveraendert
        assert tree.get_parent('leiter').id == 'acme'
        assert tree.get_parent('berater').id == 'leiter'

    def test_remove_node_moves_children_up(self, tree):
        tree.remove_node('leiter')
        assert tree.get_parent('berater').id == 'acme'
        assert tree.get_parent('kollege').id == 'acme'
        assert not tree.has_node('leiter')

    def test_remove_root_with_children_rejected(self, tree):
        with pytest.raises(HierarchyError):
            tree.remove_node('acme')

    def test_update_rates(self, tree):
        tree.update_rates('berater', bank_provision_rate=45)
        assert tree.get_node('berater').bank_provision_rate == 45.0
        assert tree.get_node('berater').insurance_provision_rate == 40.0

    def test_update_rates_invalid_keeps_old_value(self, tree):
        with pytest.raises(InvalidRateError):
            tree.update_rates('berater', bank_provision_rate=150)
        assert tree.get_node('berater').bank_provision_rate == 40.0

    def test_update_node_cannot_change_parent(self, tree):
        with pytest.raises(HierarchyError):
            tree.update_node('berater', parent_id='acme')

    def test_reorder_children(self, tree):
        tree.reorder_children('leiter', ['kollege', 'berater'])
        assert [n.id for n in tree.get_children('leiter')] == ['kollege', 'berater']

    def test_copy_is_independent(self, tree):
        clone = tree.copy()
        clone.update_rates('berater', bank_provision_rate=10)
        assert tree.get_node('berater').bank_provision_rate == 40.0

    def test_to_dict_from_dict(self, tree):
        restored = HierarchyTree.from_dict(tree.to_dict())
        assert restored.name == 'Vertrieb'
        assert restored.root_id == 'acme'
        assert restored.get_node('leiter').node_type is NodeType.TEAM
