# Domain Layer - Pure business logic, no dependencies on infrastructure

# Exceptions
from .exceptions import (
    DomainError,
    ValidationError,
    NotFoundError,
    ConflictError,
    ExternalServiceError,
    PersistenceError,
    InspectionNotFoundError,
    AnalysisInProgressError,
    InvalidStatusTransitionError,
)

# Value Objects
from .value_objects import RiskLevel

# Entities
from .entities import (
    InspectionStatus,
    AnalysisProgress,
    validate_transition,
    resolve_final_status,
)

__all__ = [
    # Exceptions
    'DomainError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'ExternalServiceError',
    'PersistenceError',
    'InspectionNotFoundError',
    'AnalysisInProgressError',
    'InvalidStatusTransitionError',
    # Value Objects
    'RiskLevel',
    # Entities
    'InspectionStatus',
    'AnalysisProgress',
    'validate_transition',
    'resolve_final_status',
]
