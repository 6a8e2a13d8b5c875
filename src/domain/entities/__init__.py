"""
Domain Entities - Pure business rules without infrastructure dependencies.
"""

from .inspection import (
    InspectionStatus,
    AnalysisProgress,
    validate_transition,
    resolve_final_status,
)

__all__ = [
    'InspectionStatus',
    'AnalysisProgress',
    'validate_transition',
    'resolve_final_status',
]
