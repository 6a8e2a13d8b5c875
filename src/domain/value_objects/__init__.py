# Value Objects - Immutable domain primitives
from .risk_level import RiskLevel

__all__ = ['RiskLevel']
