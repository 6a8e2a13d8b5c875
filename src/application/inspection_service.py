"""
Inspection lifecycle: intake of photos, analysis requests and the read side
polled by the client. The analysis itself runs in the worker (see
AnalysisOrchestrator); this service only validates, records and enqueues.
"""
import base64
import binascii
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.application.dtos import (
    AnalysisJobHandle,
    AnalysisStatusView,
    FindingView,
    InspectionView,
    PagedResult,
    PhotoInput,
    PhotoView,
)
from src.config import config
from src.domain.entities.inspection import AnalysisProgress, validate_transition
from src.domain.exceptions import (
    AnalysisInProgressError,
    ExternalServiceError,
    InspectionNotFoundError,
    PersistenceError,
    ValidationError,
)
from src.models_db import Inspection, InspectionStatus, Job, JobStatus, Photo, utcnow
from src.services.job_processor import ANALYZE_INSPECTION

logger = structlog.get_logger()

class InspectionService:
    """Entry point used by the API layer for everything inspection related."""

    def __init__(self, uow, storage, task_manager, default_prompt: str = None):
        self._uow = uow
        self._storage = storage
        self._tasks = task_manager
        self._default_prompt = default_prompt or config.ANALYSIS_DEFAULT_PROMPT

    @contextmanager
    def _persisting(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self._uow.rollback()
            logger.error("Falha de persistência", action=action, error=str(e))
            raise PersistenceError(f"Database failure during {action}: {e}") from e

    # ------------------------------------------------------------------ intake

    def create_inspection(
        self,
        photos: Sequence[PhotoInput],
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        company_id: Optional[uuid.UUID] = None,
    ) -> InspectionView:
        """
        Record a new inspection with its photos (status CREATED).

        Every image is decoded before anything is stored, so a bad photo
        rejects the whole request.
        """
        if not photos:
            raise ValidationError("A inspeção precisa de pelo menos uma foto.", "photos")

        with self._persisting("create_inspection"):
            if company_id is None:
                company_id = self._uow.companies.get_first_active_id(organization_id)
                if company_id is None:
                    raise ValidationError("Nenhuma empresa ativa cadastrada para a organização.", "company_id")

            company = self._uow.companies.get_active_for_organization(company_id, organization_id)
            if company is None:
                raise ValidationError("A empresa especificada não existe ou não está ativa.", "company_id")

            images = [self._decode_image(photo, index) for index, photo in enumerate(photos)]

            inspection = Inspection(
                organization_id=organization_id,
                affiliated_company_id=company.id,
                user_id=user_id,
                status=InspectionStatus.CREATED,
                started_at=utcnow(),
            )
            for photo_input, image_bytes in zip(photos, images):
                image_url = self._save_image(image_bytes, organization_id, photo_input.filename)
                inspection.photos.append(Photo(
                    image_url=image_url,
                    captured_at=photo_input.captured_at or utcnow(),
                    description=photo_input.description,
                    is_analyzed=False,
                ))

            self._uow.inspections.add(inspection)
            self._uow.commit()

        logger.info(
            "Inspeção criada",
            inspection_id=str(inspection.id),
            organization_id=str(organization_id),
            photos=len(images),
        )
        return self._to_view(inspection)

    @staticmethod
    def _decode_image(photo: PhotoInput, index: int) -> bytes:
        if photo.image_bytes:
            return photo.image_bytes
        if photo.image_base64:
            raw = photo.image_base64
            # Aceita data URL (data:image/jpeg;base64,...)
            if raw.startswith("data:") and "," in raw:
                raw = raw.split(",", 1)[1]
            try:
                decoded = base64.b64decode(raw, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationError(f"Foto {index + 1}: base64 inválido.", "photos") from e
            if decoded:
                return decoded
        raise ValidationError(f"Foto {index + 1}: imagem vazia.", "photos")

    def _save_image(self, image_bytes: bytes, organization_id, filename: Optional[str]) -> str:
        try:
            return self._storage.save_image(image_bytes, organization_id, filename)
        except Exception as e:
            raise ExternalServiceError(f"Failed to store photo: {e}", transient=True, service="STORAGE") from e

    # ---------------------------------------------------------------- analysis

    def select_prompt(self, custom_prompt: Optional[str]) -> str:
        """Custom prompt when given (bounded length), otherwise the configured default."""
        if custom_prompt is None or not custom_prompt.strip():
            return self._default_prompt
        prompt = custom_prompt.strip()
        if len(prompt) > config.CUSTOM_PROMPT_MAX_LENGTH:
            raise ValidationError(
                f"O prompt personalizado excede {config.CUSTOM_PROMPT_MAX_LENGTH} caracteres.",
                "custom_prompt",
            )
        return prompt

    def start_analysis(
        self,
        inspection_id: uuid.UUID,
        photo_ids: Optional[Sequence[uuid.UUID]],
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        custom_prompt: Optional[str] = None,
    ) -> AnalysisJobHandle:
        """
        Move the inspection to ANALYSIS_PENDING and enqueue the analysis job.

        photo_ids empty or None means every photo not analyzed yet. The status
        change, the Job row and the enqueue succeed or fail together. A run
        whose claim is older than ANALYSIS_STALE_AFTER_SECONDS no longer
        blocks a new request.
        """
        prompt = self.select_prompt(custom_prompt)

        with self._persisting("start_analysis"):
            inspection = self._get_scoped(inspection_id, organization_id)
            stale_before = utcnow() - timedelta(seconds=config.ANALYSIS_STALE_AFTER_SECONDS)
            if inspection.status == InspectionStatus.ANALYZING and not self._claim_is_stale(inspection, stale_before):
                raise AnalysisInProgressError(str(inspection_id))

            requested = self._resolve_photo_ids(inspection, photo_ids)
            validate_transition(inspection.status, InspectionStatus.ANALYSIS_PENDING)
            if inspection.status == InspectionStatus.ANALYZING:
                logger.warning(
                    "Execução abandonada, nova análise assume a inspeção",
                    inspection_id=str(inspection_id),
                    claimed_at=str(inspection.analysis_claimed_at),
                )

            # CAS: um worker pode ter reivindicado a inspeção entre a leitura e aqui
            moved = self._uow.inspections.try_request_analysis(inspection.id, stale_before)
            if not moved:
                self._uow.rollback()
                raise AnalysisInProgressError(str(inspection_id))

            job = Job(
                organization_id=organization_id,
                type=ANALYZE_INSPECTION,
                status=JobStatus.PENDING,
                input_payload={
                    "inspection_id": str(inspection.id),
                    "photo_ids": [str(pid) for pid in requested],
                    "user_id": str(user_id) if user_id else None,
                    "prompt": prompt,
                },
            )
            self._uow.jobs.add(job)
            self._uow.flush()

            try:
                task_name = self._tasks.enqueue_job(job.id, {"inspection_id": str(inspection.id)})
            except ExternalServiceError:
                self._uow.rollback()
                logger.error("Falha ao enfileirar análise", inspection_id=str(inspection_id))
                raise

            job.status = JobStatus.QUEUED
            job.task_name = task_name
            self._uow.commit()

        logger.info(
            "Análise enfileirada",
            inspection_id=str(inspection_id),
            job_id=str(job.id),
            photos=len(requested),
            custom_prompt=custom_prompt is not None,
        )
        return AnalysisJobHandle(
            job_id=job.id,
            inspection_id=inspection_id,
            photo_ids=requested,
            task_name=task_name,
        )

    @staticmethod
    def _claim_is_stale(inspection: Inspection, stale_before) -> bool:
        return inspection.analysis_claimed_at is None or inspection.analysis_claimed_at < stale_before

    @staticmethod
    def _resolve_photo_ids(inspection: Inspection, photo_ids) -> List[uuid.UUID]:
        if photo_ids:
            known = {photo.id for photo in inspection.photos}
            requested = list(dict.fromkeys(photo_ids))
            unknown = [str(pid) for pid in requested if pid not in known]
            if unknown:
                raise ValidationError(
                    f"Fotos não pertencem à inspeção: {', '.join(unknown)}", "photo_ids",
                )
            return requested

        requested = [photo.id for photo in inspection.photos if not photo.is_analyzed]
        if not requested:
            raise ValidationError("Todas as fotos desta inspeção já foram analisadas.", "photo_ids")
        return requested

    # -------------------------------------------------------------------- read

    def get_analysis_status(self, inspection_id, user_id, organization_id) -> AnalysisStatusView:
        with self._persisting("get_analysis_status"):
            inspection = self._get_scoped(inspection_id, organization_id)
            progress = AnalysisProgress.from_photos(inspection.photos)

            failed = [
                p for p in inspection.photos
                if not p.is_analyzed and p.analysis_error_reason and p.analysis_failed_at
            ]
            first_failure = min(failed, key=lambda p: p.analysis_failed_at) if failed else None

            return AnalysisStatusView(
                inspection_id=inspection.id,
                status=inspection.status.value,
                status_label=inspection.status.label_pt,
                total_photos=progress.total,
                analyzed_photos=progress.analyzed,
                pending_photos=progress.pending,
                started_at=inspection.started_at,
                completed_at=inspection.completed_at,
                error_message=first_failure.analysis_error_reason if first_failure else None,
            )

    def get_findings(self, inspection_id, user_id, organization_id) -> List[FindingView]:
        """Findings of the analyzed photos, highest risk first (capture order within a level)."""
        with self._persisting("get_findings"):
            inspection = self._get_scoped(inspection_id, organization_id)
            findings = sorted(
                self._uow.photos.get_findings_for_inspection(inspection.id),
                key=lambda f: f.risk_level.weight,
                reverse=True,
            )
            return [
                FindingView(
                    id=f.id,
                    photo_id=f.photo_id,
                    description=f.description,
                    risk_level=f.risk_level.value,
                    risk_level_label=f.risk_level.label_pt,
                    corrective_action=f.corrective_action,
                    preventive_action=f.preventive_action or "",
                )
                for f in findings
            ]

    def get_inspection(self, inspection_id, user_id, organization_id) -> InspectionView:
        with self._persisting("get_inspection"):
            return self._to_view(self._get_scoped(inspection_id, organization_id))

    def list_inspections(self, user_id, organization_id, company_id=None,
                         page: int = 1, page_size: int = None) -> PagedResult:
        """Inspections of the user, newest first, one page at a time."""
        page = max(1, int(page or 1))
        page_size = min(max(1, int(page_size or config.LIST_DEFAULT_PAGE_SIZE)), config.LIST_MAX_PAGE_SIZE)

        with self._persisting("list_inspections"):
            total = self._uow.inspections.count_by_organization(
                organization_id, user_id=user_id, affiliated_company_id=company_id,
            )
            inspections = self._uow.inspections.get_by_organization(
                organization_id, user_id=user_id, affiliated_company_id=company_id,
                offset=(page - 1) * page_size, limit=page_size,
            )
            return PagedResult(
                items=[self._to_view(i, include_photos=False) for i in inspections],
                total_count=total,
                page=page,
                page_size=page_size,
            )

    # ----------------------------------------------------------------- helpers

    def _get_scoped(self, inspection_id, organization_id) -> Inspection:
        inspection = self._uow.inspections.get_by_id(inspection_id, organization_id)
        if inspection is None:
            raise InspectionNotFoundError(str(inspection_id))
        return inspection

    @staticmethod
    def _to_view(inspection: Inspection, include_photos: bool = True) -> InspectionView:
        photos = list(inspection.photos)
        progress = AnalysisProgress.from_photos(photos)
        company = inspection.affiliated_company
        photo_views = [
            PhotoView(
                id=p.id,
                image_url=p.image_url,
                captured_at=p.captured_at,
                description=p.description,
                is_analyzed=bool(p.is_analyzed),
                error_reason=p.analysis_error_reason,
                error_code=p.analysis_error_code,
                findings_count=len(p.findings) if p.is_analyzed else 0,
            )
            for p in photos
        ]
        return InspectionView(
            id=inspection.id,
            affiliated_company_id=inspection.affiliated_company_id,
            affiliated_company_name=company.name if company else None,
            status=inspection.status.value,
            status_label=inspection.status.label_pt,
            started_at=inspection.started_at,
            completed_at=inspection.completed_at,
            total_photos=progress.total,
            analyzed_photos=progress.analyzed,
            findings_count=sum(v.findings_count for v in photo_views),
            photos=photo_views if include_photos else [],
        )
