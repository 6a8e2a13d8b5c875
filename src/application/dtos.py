"""Read models returned by the application services."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class PhotoInput:
    """One photo of a new inspection. Either raw bytes or base64 text."""
    captured_at: Optional[datetime] = None
    image_bytes: Optional[bytes] = None
    image_base64: Optional[str] = None
    description: Optional[str] = None
    filename: Optional[str] = None


@dataclass
class FindingView:
    id: uuid.UUID
    photo_id: uuid.UUID
    description: str
    risk_level: str
    risk_level_label: str
    corrective_action: str
    preventive_action: str


@dataclass
class PhotoView:
    id: uuid.UUID
    image_url: str
    captured_at: datetime
    description: Optional[str]
    is_analyzed: bool
    error_reason: Optional[str] = None
    error_code: Optional[str] = None
    findings_count: int = 0


@dataclass
class InspectionView:
    id: uuid.UUID
    affiliated_company_id: uuid.UUID
    affiliated_company_name: Optional[str]
    status: str
    status_label: str
    started_at: datetime
    completed_at: Optional[datetime]
    total_photos: int
    analyzed_photos: int
    findings_count: int
    photos: List[PhotoView] = field(default_factory=list)


@dataclass
class AnalysisStatusView:
    """Snapshot polled by the client while the analysis runs."""
    inspection_id: uuid.UUID
    status: str
    status_label: str
    total_photos: int
    analyzed_photos: int
    pending_photos: int
    started_at: datetime
    completed_at: Optional[datetime]
    error_message: Optional[str] = None


@dataclass
class AnalysisJobHandle:
    """Returned by start_analysis; the job id is what the client tracks."""
    job_id: uuid.UUID
    inspection_id: uuid.UUID
    photo_ids: List[uuid.UUID]
    task_name: Optional[str] = None


@dataclass
class PagedResult:
    """One page of a listing plus the totals the client needs to paginate."""
    items: List[InspectionView]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total_count + self.page_size - 1) // self.page_size if self.total_count else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages
