"""
Inspection status workflow and analysis progress aggregation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Set
from uuid import UUID

from ..exceptions import InvalidStatusTransitionError


class InspectionStatus(str, Enum):
    """Inspection status workflow."""
    CREATED = "CREATED"
    ANALYSIS_PENDING = "ANALYSIS_PENDING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def label_pt(self) -> str:
        """Get Portuguese label for the status."""
        labels = {
            self.CREATED: "Fotos Capturadas",
            self.ANALYSIS_PENDING: "Aguardando Análise",
            self.ANALYZING: "Analisando",
            self.COMPLETED: "Concluído",
            self.FAILED: "Falhou",
        }
        return labels[self]

    @property
    def is_terminal(self) -> bool:
        """A run has finished (successfully or not)."""
        return self in (self.COMPLETED, self.FAILED)

    @property
    def can_transition_to(self) -> List['InspectionStatus']:
        """
        Get valid status transitions from current status.

        ANALYZING -> ANALYSIS_PENDING is the cancellation path; finished
        inspections go back to ANALYSIS_PENDING when more photos are requested,
        and straight to ANALYZING when a job queued during the previous run
        picks up its still pending photos.
        """
        transitions = {
            self.CREATED: [self.ANALYSIS_PENDING],
            self.ANALYSIS_PENDING: [self.ANALYSIS_PENDING, self.ANALYZING],
            self.ANALYZING: [self.COMPLETED, self.FAILED, self.ANALYSIS_PENDING],
            self.COMPLETED: [self.ANALYSIS_PENDING, self.ANALYZING],
            self.FAILED: [self.ANALYSIS_PENDING, self.ANALYZING],
        }
        return transitions.get(self, [])


def validate_transition(current: InspectionStatus, target: InspectionStatus) -> None:
    """Raise InvalidStatusTransitionError if `current -> target` is not allowed."""
    if target not in InspectionStatus(current).can_transition_to:
        raise InvalidStatusTransitionError(
            current_status=InspectionStatus(current).value,
            target_status=InspectionStatus(target).value,
        )


@dataclass(frozen=True)
class AnalysisProgress:
    """Photo counters for an inspection. pending is always total - analyzed."""
    total: int
    analyzed: int

    @property
    def pending(self) -> int:
        return self.total - self.analyzed

    @classmethod
    def from_photos(cls, photos: Iterable) -> 'AnalysisProgress':
        photos = list(photos)
        return cls(total=len(photos), analyzed=sum(1 for p in photos if p.is_analyzed))


def resolve_final_status(
    requested_ids: Set[UUID],
    analyzed_ids: Set[UUID],
) -> InspectionStatus:
    """
    Decide the inspection status at the end of a run.

    Args:
        requested_ids: Photos the run was asked to analyze.
        analyzed_ids: Every photo of the inspection that is analyzed now,
            including photos analyzed by earlier runs.

    Partial success still completes the run; FAILED only when nothing in the
    inspection was ever analyzed.
    """
    if requested_ids and requested_ids <= analyzed_ids:
        return InspectionStatus.COMPLETED
    if analyzed_ids:
        return InspectionStatus.COMPLETED
    return InspectionStatus.FAILED
