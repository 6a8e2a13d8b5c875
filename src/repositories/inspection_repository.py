"""Repository for Inspection entities."""
from datetime import datetime
from typing import Optional, List, Iterable
import uuid

from sqlalchemy import update, and_, or_
from sqlalchemy.orm import selectinload

from src.models_db import Inspection, InspectionStatus, Photo


class InspectionRepository:
    def __init__(self, session):
        self._session = session

    def get_by_id(self, id: uuid.UUID, organization_id: uuid.UUID) -> Optional[Inspection]:
        """Tenant-scoped lookup. A foreign organization gets None, same as a missing id."""
        return self._session.query(Inspection).options(
            selectinload(Inspection.photos).selectinload(Photo.findings),
            selectinload(Inspection.affiliated_company),
        ).filter(
            Inspection.id == id,
            Inspection.organization_id == organization_id,
        ).first()

    def get_for_analysis(self, id: uuid.UUID) -> Optional[Inspection]:
        """Unscoped lookup for the worker; the job payload was validated at enqueue time."""
        return self._session.query(Inspection).options(
            selectinload(Inspection.photos),
        ).filter(Inspection.id == id).first()

    def _organization_query(self, organization_id, user_id=None, affiliated_company_id=None):
        query = self._session.query(Inspection).filter(Inspection.organization_id == organization_id)
        if user_id:
            query = query.filter(Inspection.user_id == user_id)
        if affiliated_company_id:
            query = query.filter(Inspection.affiliated_company_id == affiliated_company_id)
        return query

    def get_by_organization(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID = None,
        affiliated_company_id: uuid.UUID = None,
        offset: int = 0,
        limit: int = 20,
    ) -> List[Inspection]:
        """One page, most recent first."""
        return self._organization_query(organization_id, user_id, affiliated_company_id).options(
            selectinload(Inspection.photos).selectinload(Photo.findings),
            selectinload(Inspection.affiliated_company),
        ).order_by(
            Inspection.started_at.desc(), Inspection.id,
        ).offset(offset).limit(limit).all()

    def count_by_organization(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID = None,
        affiliated_company_id: uuid.UUID = None,
    ) -> int:
        return self._organization_query(organization_id, user_id, affiliated_company_id).count()

    def try_transition(
        self,
        id: uuid.UUID,
        from_statuses: Iterable[InspectionStatus],
        to_status: InspectionStatus,
        **values,
    ) -> bool:
        """
        Atomic conditional UPDATE on status (compare-and-swap).

        Returns True only if this call moved the row. The caller commits.
        """
        result = self._session.execute(
            update(Inspection)
            .where(Inspection.id == id, Inspection.status.in_(list(from_statuses)))
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def try_request_analysis(self, id: uuid.UUID, stale_before: datetime) -> bool:
        """
        Move to ANALYSIS_PENDING for a new analysis request.

        Allowed from every status except a live ANALYZING; a run whose claim
        went stale (its instance died, its retries ran out) is abandoned.
        """
        result = self._session.execute(
            update(Inspection)
            .where(
                Inspection.id == id,
                or_(
                    Inspection.status.in_([
                        InspectionStatus.CREATED,
                        InspectionStatus.ANALYSIS_PENDING,
                        InspectionStatus.COMPLETED,
                        InspectionStatus.FAILED,
                    ]),
                    and_(
                        Inspection.status == InspectionStatus.ANALYZING,
                        or_(Inspection.analysis_claimed_at.is_(None),
                            Inspection.analysis_claimed_at < stale_before),
                    ),
                ),
            )
            .values(
                status=InspectionStatus.ANALYSIS_PENDING,
                completed_at=None,
                analysis_job_id=None,
                analysis_claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def try_claim_analysis(
        self,
        id: uuid.UUID,
        job_id: Optional[uuid.UUID],
        stale_before: datetime,
        claimed_at: datetime,
        resume: bool = False,
        from_terminal: bool = False,
    ) -> bool:
        """
        Take ownership of the run (-> ANALYZING) as a single conditional UPDATE.

        Claimable: ANALYSIS_PENDING; COMPLETED/FAILED when `from_terminal`
        (a queued job whose photos are still pending); ANALYZING once the
        claim is stale. With `resume`, the job that owns an ANALYZING row can
        take it back; the caller must know that job's previous delivery is
        over (the Job row went back to QUEUED).
        """
        claimable = [Inspection.status == InspectionStatus.ANALYSIS_PENDING]
        if from_terminal:
            claimable.append(Inspection.status.in_([InspectionStatus.COMPLETED, InspectionStatus.FAILED]))

        reclaim = [
            Inspection.analysis_claimed_at.is_(None),
            Inspection.analysis_claimed_at < stale_before,
        ]
        if resume and job_id is not None:
            reclaim.append(Inspection.analysis_job_id == job_id)
        claimable.append(and_(Inspection.status == InspectionStatus.ANALYZING, or_(*reclaim)))

        result = self._session.execute(
            update(Inspection)
            .where(Inspection.id == id, or_(*claimable))
            .values(
                status=InspectionStatus.ANALYZING,
                analysis_job_id=job_id,
                analysis_claimed_at=claimed_at,
                completed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_claim(self, id: uuid.UUID, job_id: uuid.UUID) -> bool:
        """ANALYZING -> ANALYSIS_PENDING, only while `job_id` still owns the run."""
        result = self._session.execute(
            update(Inspection)
            .where(
                Inspection.id == id,
                Inspection.status == InspectionStatus.ANALYZING,
                Inspection.analysis_job_id == job_id,
            )
            .values(
                status=InspectionStatus.ANALYSIS_PENDING,
                analysis_job_id=None,
                analysis_claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def add(self, inspection: Inspection) -> Inspection:
        self._session.add(inspection)
        return inspection

    def refresh(self, inspection: Inspection) -> Inspection:
        """Reload the row after a Core-level UPDATE."""
        self._session.refresh(inspection)
        return inspection
