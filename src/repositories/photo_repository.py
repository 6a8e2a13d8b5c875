"""Repository for Photo and Finding entities."""
from typing import Optional, List
import uuid

from src.models_db import Photo, Finding


class PhotoRepository:
    def __init__(self, session):
        self._session = session

    def get_by_id(self, id: uuid.UUID) -> Optional[Photo]:
        return self._session.get(Photo, id)

    def get_for_inspection(self, inspection_id: uuid.UUID) -> List[Photo]:
        return self._session.query(Photo).filter_by(
            inspection_id=inspection_id,
        ).order_by(Photo.captured_at).all()

    def get_findings_for_inspection(self, inspection_id: uuid.UUID) -> List[Finding]:
        """Findings of every analyzed photo, in photo capture order."""
        return self._session.query(Finding).join(Finding.photo).filter(
            Photo.inspection_id == inspection_id,
            Photo.is_analyzed.is_(True),
        ).order_by(Photo.captured_at, Finding.id).all()

    def replace_findings(self, photo: Photo, findings: List[Finding]) -> List[Finding]:
        """Drop every previous finding of the photo and attach the new set."""
        self._session.query(Finding).filter_by(photo_id=photo.id).delete(synchronize_session=False)
        self._session.expire(photo, ["findings"])
        for finding in findings:
            finding.photo_id = photo.id
            self._session.add(finding)
        return findings

    def add(self, photo: Photo) -> Photo:
        self._session.add(photo)
        return photo
