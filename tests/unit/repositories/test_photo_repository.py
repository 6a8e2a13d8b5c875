"""Tests for PhotoRepository and CompanyRepository."""
import uuid

from src.domain.value_objects import RiskLevel
from src.models_db import Finding
from src.repositories.company_repository import CompanyRepository
from src.repositories.photo_repository import PhotoRepository


class TestPhotoRepository:

    def test_get_for_inspection_in_capture_order(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, photos=3)
        repo = PhotoRepository(db_session)

        photos = repo.get_for_inspection(inspection.id)
        assert len(photos) == 3
        assert [p.captured_at for p in photos] == sorted(p.captured_at for p in photos)

    def test_findings_only_from_analyzed_photos(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, photos=3, analyzed=1)
        pending_photo = inspection.photos[2]
        # Achado órfão numa foto não analisada não deve aparecer
        db_session.add(Finding(
            photo_id=pending_photo.id,
            description='Resto de execução anterior',
            risk_level=RiskLevel.HIGH,
            corrective_action='-',
        ))
        db_session.commit()

        findings = PhotoRepository(db_session).get_findings_for_inspection(inspection.id)
        assert len(findings) == 1
        assert findings[0].photo_id == inspection.photos[0].id

    def test_replace_findings(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, photos=1, analyzed=1)
        photo = inspection.photos[0]
        repo = PhotoRepository(db_session)

        repo.replace_findings(photo, [
            Finding(description='Fiação exposta', risk_level=RiskLevel.HIGH, corrective_action='Isolar'),
            Finding(description='Piso molhado', risk_level=RiskLevel.LOW, corrective_action='Secar'),
        ])
        db_session.commit()

        descriptions = sorted(f.description for f in repo.get_by_id(photo.id).findings)
        assert descriptions == ['Fiação exposta', 'Piso molhado']


class TestCompanyRepository:

    def test_active_company_scoped_to_organization(self, db_session, company_factory):
        company = company_factory.create(db_session)
        repo = CompanyRepository(db_session)

        assert repo.get_active_for_organization(company.id, company.organization_id).id == company.id
        assert repo.get_active_for_organization(company.id, uuid.uuid4()) is None

    def test_inactive_company_is_ignored(self, db_session, company_factory):
        company = company_factory.create(db_session, is_active=False)
        repo = CompanyRepository(db_session)

        assert repo.get_active_for_organization(company.id, company.organization_id) is None
        assert repo.get_first_active_id(company.organization_id) is None

    def test_first_active_id(self, db_session, company_factory):
        first = company_factory.create(db_session, name='B Empresa')
        company_factory.create(db_session, organization=first.organization, name='A Empresa')
        repo = CompanyRepository(db_session)

        assert repo.get_first_active_id(first.organization_id) == first.id
