"""Repository for AffiliatedCompany entities."""
from typing import Optional
import uuid

from src.models_db import AffiliatedCompany


class CompanyRepository:
    def __init__(self, session):
        self._session = session

    def get_active_for_organization(
        self,
        id: uuid.UUID,
        organization_id: uuid.UUID,
    ) -> Optional[AffiliatedCompany]:
        """Company only if it belongs to the organization and is active."""
        return self._session.query(AffiliatedCompany).filter(
            AffiliatedCompany.id == id,
            AffiliatedCompany.organization_id == organization_id,
            AffiliatedCompany.is_active.is_(True),
        ).first()

    def get_first_active_id(self, organization_id: uuid.UUID) -> Optional[uuid.UUID]:
        company = self._session.query(AffiliatedCompany).filter(
            AffiliatedCompany.organization_id == organization_id,
            AffiliatedCompany.is_active.is_(True),
        ).order_by(AffiliatedCompany.created_at).first()
        return company.id if company else None

    def add(self, company: AffiliatedCompany) -> AffiliatedCompany:
        self._session.add(company)
        return company
