"""
Risk Level Value Object - Severity of a safety finding.
"""

import unicodedata
from enum import Enum

from ..exceptions import ValidationError


def _fold(text: str) -> str:
    """Upper-case and strip accents ("Médio" -> "MEDIO")."""
    nfkd_form = unicodedata.normalize('NFKD', text)
    return nfkd_form.encode('ASCII', 'ignore').decode('utf-8').strip().upper()


class RiskLevel(str, Enum):
    """Risk levels returned by the AI classifier."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def parse(cls, raw: str) -> 'RiskLevel':
        """
        Normalize a free-text risk level into the enum.

        The model answers in the prompt's language, so "Alto", "ALTA",
        "Medio", "Bajo" and "High" are all accepted.
        """
        if raw is None or not str(raw).strip():
            raise ValidationError("Nível de risco é obrigatório", "risk_level")

        aliases = {
            "HIGH": cls.HIGH, "ALTO": cls.HIGH, "ALTA": cls.HIGH, "CRITICO": cls.HIGH,
            "MEDIUM": cls.MEDIUM, "MEDIO": cls.MEDIUM, "MEDIA": cls.MEDIUM, "MODERADO": cls.MEDIUM,
            "LOW": cls.LOW, "BAIXO": cls.LOW, "BAIXA": cls.LOW, "BAJO": cls.LOW, "BAJA": cls.LOW,
        }
        level = aliases.get(_fold(str(raw)))
        if level is None:
            raise ValidationError(f"Nível de risco inválido: '{raw}'", "risk_level")
        return level

    @property
    def label_pt(self) -> str:
        labels = {
            self.LOW: "Baixo",
            self.MEDIUM: "Médio",
            self.HIGH: "Alto",
        }
        return labels[self]

    @property
    def weight(self) -> int:
        """Get numeric weight for sorting findings."""
        weights = {
            self.LOW: 1,
            self.MEDIUM: 2,
            self.HIGH: 3,
        }
        return weights[self]
