"""
Provisions-Domain: Organigramm, Umsaetze, Kaskade und Abrechnung.
"""

from domain.provision.errors import (
    ProvisionError, ValidationError, InvalidRateError, HierarchyError,
    NodeNotFoundError, ParticipantNotFoundError, SnapshotInconsistencyError,
    InvalidStatusTransitionError,
)
from domain.provision.hierarchy import (
    NodeType, CareerLevel, CAREER_LEVELS, HierarchyNode, HierarchyTree,
)
from domain.provision.revenue import (
    RevenueCategory, RevenueStatus, STATUS_TRANSITIONS, TipProviderAllocation,
    HierarchySnapshot, ProvisionSnapshot, RevenueEntry,
)
from domain.provision.cascade import ParticipantRole, Participant, ProvisionCascade
from domain.provision.billing import (
    CategoryTotals, ProvisionSummary, LineItemSource, ReportLineItem,
    ReportPeriod, EmployeeDetails, BillingReport,
)

__all__ = [
    'ProvisionError', 'ValidationError', 'InvalidRateError', 'HierarchyError',
    'NodeNotFoundError', 'ParticipantNotFoundError', 'SnapshotInconsistencyError',
    'InvalidStatusTransitionError',
    'NodeType', 'CareerLevel', 'CAREER_LEVELS', 'HierarchyNode', 'HierarchyTree',
    'RevenueCategory', 'RevenueStatus', 'STATUS_TRANSITIONS', 'TipProviderAllocation',
    'HierarchySnapshot', 'ProvisionSnapshot', 'RevenueEntry',
    'ParticipantRole', 'Participant', 'ProvisionCascade',
    'CategoryTotals', 'ProvisionSummary', 'LineItemSource', 'ReportLineItem',
    'ReportPeriod', 'EmployeeDetails', 'BillingReport',
]
