from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import String, Boolean, ForeignKey, Text, TIMESTAMP, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.domain.entities.inspection import InspectionStatus
from src.domain.value_objects.risk_level import RiskLevel


def utcnow() -> datetime:
    """Naive UTC timestamp (colunas TIMESTAMP sem timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# JSONB no Postgres, JSON genérico no SQLite dos testes
JsonType = JSON().with_variant(JSONB(), "postgresql")


# 1. Declaração Base
class Base(DeclarativeBase):
    pass


# 2. Tabelas
class Organization(Base):
    """Tenant boundary. Everything below belongs to exactly one organization."""
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)

    # Relacionamentos
    users: Mapped[List["User"]] = relationship(back_populates="organization")
    affiliated_companies: Mapped[List["AffiliatedCompany"]] = relationship(back_populates="organization")


class AffiliatedCompany(Base):
    """The audited company."""
    __tablename__ = "affiliated_companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    tax_id: Mapped[Optional[str]] = mapped_column(String)  # CNPJ / NIT
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)

    organization: Mapped["Organization"] = relationship(back_populates="affiliated_companies")
    inspections: Mapped[List["Inspection"]] = relationship(back_populates="affiliated_company")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    organization: Mapped["Organization"] = relationship(back_populates="users")
    inspections: Mapped[List["Inspection"]] = relationship(back_populates="user")


class Inspection(Base):
    __tablename__ = "inspections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    affiliated_company_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("affiliated_companies.id"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)

    status: Mapped[InspectionStatus] = mapped_column(default=InspectionStatus.CREATED, index=True)
    started_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP, nullable=True)

    # Guarda de exclusão mútua: job dono da execução atual e quando foi reivindicada
    analysis_job_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    analysis_claimed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP, nullable=True)

    # Relacionamentos
    organization: Mapped["Organization"] = relationship()
    affiliated_company: Mapped["AffiliatedCompany"] = relationship(back_populates="inspections")
    user: Mapped["User"] = relationship(back_populates="inspections")
    photos: Mapped[List["Photo"]] = relationship(
        back_populates="inspection",
        cascade="all, delete-orphan",
        order_by="Photo.captured_at",
    )


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    inspection_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("inspections.id"), nullable=False, index=True)

    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)
    description: Mapped[Optional[str]] = mapped_column(String(500))

    is_analyzed: Mapped[bool] = mapped_column(Boolean, default=False)
    analyzed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP, nullable=True)

    # Falha permanente da última tentativa (mensagem para o usuário + código do catálogo)
    analysis_error_reason: Mapped[Optional[str]] = mapped_column(Text)
    analysis_error_code: Mapped[Optional[str]] = mapped_column(String(20))
    analysis_failed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP, nullable=True)

    inspection: Mapped["Inspection"] = relationship(back_populates="photos")
    findings: Mapped[List["Finding"]] = relationship(back_populates="photo", cascade="all, delete-orphan")


class Finding(Base):
    __tablename__ = "findings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    photo_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("photos.id"), nullable=False, index=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    risk_level: Mapped[RiskLevel] = mapped_column(nullable=False)
    corrective_action: Mapped[str] = mapped_column(Text, nullable=False)
    preventive_action: Mapped[str] = mapped_column(Text, default="")

    # Relacionamento Reverso
    photo: Mapped["Photo"] = relationship(back_populates="findings")


# 3. Job State Machine
class JobStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Tenant Isolation
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)

    # Metadata
    type: Mapped[str] = mapped_column(String, nullable=False)  # 'ANALYZE_INSPECTION'
    status: Mapped[JobStatus] = mapped_column(default=JobStatus.PENDING, index=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP)
    # Início da entrega em andamento (guarda contra entregas duplicadas do Cloud Tasks)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP)

    execution_time_seconds: Mapped[float] = mapped_column(default=0.0)
    attempts: Mapped[int] = mapped_column(default=0)
    task_name: Mapped[Optional[str]] = mapped_column(String)  # Cloud Tasks task id

    # Payloads for Debug/Retry
    input_payload: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    result_payload: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    error_log: Mapped[Optional[str]] = mapped_column(Text)
