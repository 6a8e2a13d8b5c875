"""
Analysis Orchestrator - runs the per-photo AI analysis of one inspection.

Only ever invoked from a scheduler job (see JobProcessor). One run:
claim the inspection (ANALYSIS_PENDING -> ANALYZING), analyze the pending
photos on a bounded thread pool, persist each photo as soon as it finishes,
then write the aggregate status.
"""
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from src.config import config
from src.domain.entities.inspection import InspectionStatus, resolve_final_status
from src.domain.exceptions import ExternalServiceError, PersistenceError, ValidationError
from src.domain.value_objects.risk_level import RiskLevel
from src.error_codes import ErrorCode
from src.models_db import Finding, utcnow

logger = structlog.get_logger()


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, ExternalServiceError) and error.transient


@dataclass
class PhotoOutcome:
    """Result of one photo task. Built on a worker thread, persisted on the run thread."""
    photo_id: uuid.UUID
    findings: Optional[List[dict]] = None
    error: Optional[Exception] = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.findings is not None


@dataclass
class RunSummary:
    inspection_id: uuid.UUID
    status: Optional[InspectionStatus] = None
    skipped: bool = False
    reason: Optional[str] = None
    cancelled: bool = False
    analyzed: List[uuid.UUID] = field(default_factory=list)
    already_analyzed: List[uuid.UUID] = field(default_factory=list)
    failed: Dict[uuid.UUID, str] = field(default_factory=dict)  # photo_id -> ERR_xxxx

    @property
    def retry_later(self) -> bool:
        """The job must be delivered again: cancelled mid-run, or another run holds the inspection."""
        return self.cancelled or self.reason == "busy"

    def to_dict(self) -> dict:
        return {
            "inspection_id": str(self.inspection_id),
            "status": self.status.value if self.status else None,
            "skipped": self.skipped,
            "reason": self.reason,
            "cancelled": self.cancelled,
            "retry_later": self.retry_later,
            "analyzed": [str(pid) for pid in self.analyzed],
            "already_analyzed": [str(pid) for pid in self.already_analyzed],
            "failed": {str(pid): code for pid, code in self.failed.items()},
        }


class AnalysisOrchestrator:
    def __init__(self, uow, analyzer, storage,
                 max_concurrency: int = None, max_attempts: int = None,
                 backoff_seconds: float = None, backoff_max_seconds: float = None,
                 stale_after_seconds: int = None, default_prompt: str = None):
        self._uow = uow
        self._analyzer = analyzer
        self._storage = storage
        self.max_concurrency = max(1, max_concurrency or config.ANALYSIS_MAX_CONCURRENCY)
        self.max_attempts = max(1, max_attempts or config.ANALYSIS_MAX_ATTEMPTS)
        self.backoff_seconds = config.ANALYSIS_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.backoff_max_seconds = config.ANALYSIS_BACKOFF_MAX_SECONDS if backoff_max_seconds is None else backoff_max_seconds
        self.stale_after_seconds = stale_after_seconds or config.ANALYSIS_STALE_AFTER_SECONDS
        self.default_prompt = default_prompt or config.ANALYSIS_DEFAULT_PROMPT

    def run(self, inspection_id: uuid.UUID, photo_ids: Iterable[uuid.UUID], user_id: uuid.UUID,
            prompt: Optional[str] = None, job_id: Optional[uuid.UUID] = None,
            cancel_event: Optional[threading.Event] = None, resume: bool = False) -> RunSummary:
        """
        Analyze the requested photos of an inspection.

        Safe to call more than once with the same arguments (at-least-once
        delivery): photos already analyzed are skipped and a run that can't
        claim the inspection returns a skipped summary. `resume` lets `job_id`
        take back an ANALYZING inspection it still owns; pass it only when that
        job's previous delivery is known to be over.

        Raises:
            PersistenceError: bookkeeping write failed. Status stays ANALYZING
                so the scheduler's retry of the same job can re-claim it.
        """
        log = logger.bind(inspection_id=str(inspection_id), job_id=str(job_id) if job_id else None,
                          user_id=str(user_id) if user_id else None)
        try:
            return self._run(inspection_id, photo_ids, prompt, job_id, cancel_event, resume, log)
        except SQLAlchemyError as e:
            log.error("❌ Falha de persistência durante a análise", error=str(e))
            self._uow.rollback()
            raise PersistenceError(f"Database error while analyzing inspection {inspection_id}: {e}") from e

    def _run(self, inspection_id, photo_ids, prompt, job_id, cancel_event, resume, log) -> RunSummary:
        requested = list(dict.fromkeys(photo_ids or []))
        summary = RunSummary(inspection_id=inspection_id)

        # 1. Idempotência
        inspection = self._uow.inspections.get_for_analysis(inspection_id)
        if inspection is None:
            log.warning("⚠️ Inspeção não encontrada. Nada a fazer.")
            summary.skipped, summary.reason = True, "not_found"
            return summary

        analyzed_ids = {p.id for p in inspection.photos if p.is_analyzed}
        if inspection.status.is_terminal and set(requested) <= analyzed_ids:
            log.info("♻️ Fotos solicitadas já analisadas. Entrega duplicada ignorada.", status=inspection.status.value)
            summary.skipped, summary.reason, summary.status = True, "already_completed", inspection.status
            summary.already_analyzed = requested
            return summary

        # 2. Guarda de status (CAS)
        now = utcnow()
        claimed = self._uow.inspections.try_claim_analysis(
            inspection.id,
            job_id=job_id,
            stale_before=now - timedelta(seconds=self.stale_after_seconds),
            claimed_at=now,
            resume=resume,
            # Job enfileirado depois do fim de outra execução: fotos pendentes ainda não rodaram
            from_terminal=job_id is not None,
        )
        self._uow.commit()
        if not claimed:
            current = self._uow.inspections.refresh(inspection).status
            # ANALYZING: outra execução ativa, o job volta para a fila
            reason = "busy" if current == InspectionStatus.ANALYZING else "not_claimable"
            log.warning("⛔ Inspeção não pôde ser reivindicada.", status=current.value, reason=reason)
            summary.skipped, summary.reason, summary.status = True, reason, current
            return summary

        # 3. Particiona: já analisadas vs pendentes
        photos_by_id = {p.id: p for p in self._uow.photos.get_for_inspection(inspection.id)}
        unknown = [pid for pid in requested if pid not in photos_by_id]
        if unknown:
            log.warning("⚠️ Fotos solicitadas não pertencem à inspeção", photo_ids=[str(pid) for pid in unknown])

        targets = [photos_by_id[pid] for pid in requested if pid in photos_by_id]
        summary.already_analyzed = [p.id for p in targets if p.is_analyzed]
        # Snapshot (id, url): objetos ORM não saem desta thread
        pending = [(p.id, p.image_url) for p in targets if not p.is_analyzed]

        log.info("⚙️ Iniciando análise", pending=len(pending), skipped=len(summary.already_analyzed),
                 max_concurrency=self.max_concurrency)

        # 4-5. Análise com paralelismo limitado
        cancelled = self._process(pending, prompt or self.default_prompt, cancel_event, summary, log)

        # 7. Cancelamento: volta para ANALYSIS_PENDING, retomável
        if cancelled:
            self._uow.inspections.try_transition(
                inspection.id, [InspectionStatus.ANALYZING], InspectionStatus.ANALYSIS_PENDING,
                completed_at=None, analysis_job_id=None, analysis_claimed_at=None,
            )
            self._uow.commit()
            summary.cancelled = True
            summary.status = self._uow.inspections.refresh(inspection).status
            log.info("⏸️ Análise cancelada. Fotos restantes ficam pendentes.",
                     analyzed=len(summary.analyzed), status=summary.status.value)
            return summary

        # 6. Status agregado
        analyzed_now = {p.id for p in self._uow.photos.get_for_inspection(inspection.id) if p.is_analyzed}
        final_status = resolve_final_status({p.id for p in targets}, analyzed_now)
        moved = self._uow.inspections.try_transition(
            inspection.id, [InspectionStatus.ANALYZING], final_status,
            completed_at=utcnow(), analysis_job_id=None, analysis_claimed_at=None,
        )
        self._uow.commit()
        if not moved:
            summary.reason = "status_overwritten"
            log.warning("⚠️ Status alterado por outra execução antes da finalização.")

        summary.status = self._uow.inspections.refresh(inspection).status
        log.info("✅ Análise finalizada", status=summary.status.value,
                 analyzed=len(summary.analyzed), failed=len(summary.failed))
        return summary

    def _process(self, pending, prompt, cancel_event, summary, log) -> bool:
        """Run photo tasks on the pool and persist each outcome. Returns True if cancelled."""
        if not pending:
            return False

        abort = threading.Event()

        def should_stop() -> bool:
            return abort.is_set() or (cancel_event is not None and cancel_event.is_set())

        cancelled = False
        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="photo-analysis") as pool:
            futures = [pool.submit(self._analyze_photo, photo_id, url, prompt, should_stop)
                       for photo_id, url in pending]
            try:
                for future in as_completed(futures):
                    outcome = future.result()
                    if outcome.cancelled:
                        cancelled = True
                        continue
                    self._persist_outcome(outcome, summary, log)
            except BaseException:
                # Não começa fotos novas se a persistência quebrou
                abort.set()
                raise
        return cancelled

    def _analyze_photo(self, photo_id, image_url, prompt, should_stop) -> PhotoOutcome:
        """Worker thread: storage read + AI call. Never touches the DB session."""
        if should_stop():
            return PhotoOutcome(photo_id=photo_id, cancelled=True)

        outcome = PhotoOutcome(photo_id=photo_id)
        try:
            image_bytes = self._storage.read_image(image_url)
            if not image_bytes:
                raise ExternalServiceError("Image not found or empty in storage", transient=False, error_code="ERR_1001")

            retrying = Retrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_max_seconds),
                retry=retry_if_exception(_is_transient),
                before_sleep=lambda state: logger.warning(
                    "🔁 Erro transitório, nova tentativa",
                    photo_id=str(photo_id),
                    attempt=state.attempt_number,
                    error=str(state.outcome.exception()),
                ),
                reraise=True,
            )
            for attempt in retrying:
                with attempt:
                    outcome.attempts = attempt.retry_state.attempt_number
                    result = self._analyzer.analyze(image_bytes, prompt)

            outcome.findings = [
                {
                    "description": item.descricao,
                    "risk_level": RiskLevel.parse(item.nivel_risco),
                    "corrective_action": item.acao_corretiva,
                    "preventive_action": item.acao_preventiva or "",
                }
                for item in result.achados
            ]
        except ValidationError as e:
            outcome.error = ExternalServiceError(f"AI structured output validation failed: {e.message}",
                                                 transient=False, error_code="ERR_2003")
        except Exception as e:
            outcome.error = e
        return outcome

    def _persist_outcome(self, outcome: PhotoOutcome, summary: RunSummary, log) -> None:
        """One commit per photo: (is_analyzed, findings) always land together."""
        photo = self._uow.photos.get_by_id(outcome.photo_id)

        if outcome.succeeded:
            self._uow.photos.replace_findings(photo, [Finding(**data) for data in outcome.findings])
            photo.is_analyzed = True
            photo.analyzed_at = utcnow()
            photo.analysis_error_reason = None
            photo.analysis_error_code = None
            photo.analysis_failed_at = None
            self._uow.commit()
            summary.analyzed.append(photo.id)
            log.info("📸 Foto analisada", photo_id=str(photo.id), findings=len(outcome.findings),
                     attempts=outcome.attempts)
            return

        error = ErrorCode.get_error(outcome.error)
        photo.is_analyzed = False
        photo.analysis_error_reason = error["user_msg"]
        photo.analysis_error_code = error["code"]
        photo.analysis_failed_at = utcnow()
        self._uow.commit()
        summary.failed[photo.id] = error["code"]
        log.error("❌ Falha ao analisar foto", photo_id=str(photo.id), code=error["code"],
                  admin_msg=error["admin_msg"], error=str(outcome.error), attempts=outcome.attempts)
