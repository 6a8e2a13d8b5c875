"""Tests for InspectionRepository."""
import uuid
from datetime import timedelta

from src.models_db import InspectionStatus, utcnow
from src.repositories.inspection_repository import InspectionRepository


class TestInspectionRepository:

    def test_get_by_id_is_tenant_scoped(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session)
        repo = InspectionRepository(db_session)

        assert repo.get_by_id(inspection.id, inspection.organization_id).id == inspection.id
        assert repo.get_by_id(inspection.id, uuid.uuid4()) is None

    def test_get_by_id_not_found(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session)
        repo = InspectionRepository(db_session)
        assert repo.get_by_id(uuid.uuid4(), inspection.organization_id) is None

    def test_get_by_id_loads_photos_in_capture_order(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, photos=3)
        repo = InspectionRepository(db_session)

        result = repo.get_by_id(inspection.id, inspection.organization_id)
        captured = [p.captured_at for p in result.photos]
        assert captured == sorted(captured)
        assert len(captured) == 3

    def test_get_for_analysis_ignores_tenant(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session)
        repo = InspectionRepository(db_session)
        assert repo.get_for_analysis(inspection.id).id == inspection.id

    def test_get_by_organization_filters(self, db_session, inspection_factory, company_factory):
        first = inspection_factory.create(db_session, started_at=utcnow() - timedelta(days=1))
        company = first.affiliated_company
        second = inspection_factory.create(db_session, company=company)
        other_company = company_factory.create(db_session, organization=company.organization)
        third = inspection_factory.create(db_session, company=other_company, user=second.user)
        inspection_factory.create(db_session)  # outra organização

        repo = InspectionRepository(db_session)
        all_items = repo.get_by_organization(company.organization_id)
        assert [i.id for i in all_items][-1] == first.id
        assert {i.id for i in all_items} == {first.id, second.id, third.id}

        by_user = repo.get_by_organization(company.organization_id, user_id=second.user_id)
        assert {i.id for i in by_user} == {second.id, third.id}

        by_company = repo.get_by_organization(company.organization_id, affiliated_company_id=other_company.id)
        assert [i.id for i in by_company] == [third.id]

    def test_try_transition_moves_only_from_expected_status(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.CREATED)
        repo = InspectionRepository(db_session)

        assert repo.try_transition(inspection.id, [InspectionStatus.ANALYZING], InspectionStatus.COMPLETED) is False
        assert repo.try_transition(
            inspection.id, [InspectionStatus.CREATED], InspectionStatus.ANALYSIS_PENDING,
        ) is True
        db_session.commit()
        assert repo.refresh(inspection).status == InspectionStatus.ANALYSIS_PENDING


class TestTryClaimAnalysis:

    def test_claim_pending_inspection(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.ANALYSIS_PENDING)
        repo = InspectionRepository(db_session)
        job_id = uuid.uuid4()
        now = utcnow()

        assert repo.try_claim_analysis(inspection.id, job_id, now - timedelta(minutes=15), now) is True
        db_session.commit()

        repo.refresh(inspection)
        assert inspection.status == InspectionStatus.ANALYZING
        assert inspection.analysis_job_id == job_id
        assert inspection.analysis_claimed_at is not None

    def test_second_claim_by_other_job_loses(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.ANALYSIS_PENDING)
        repo = InspectionRepository(db_session)
        now = utcnow()
        stale_before = now - timedelta(minutes=15)

        assert repo.try_claim_analysis(inspection.id, uuid.uuid4(), stale_before, now) is True
        assert repo.try_claim_analysis(inspection.id, uuid.uuid4(), stale_before, now) is False

    def test_same_job_reclaims_only_when_resuming(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.ANALYSIS_PENDING)
        repo = InspectionRepository(db_session)
        job_id = uuid.uuid4()
        now = utcnow()
        stale_before = now - timedelta(minutes=15)

        assert repo.try_claim_analysis(inspection.id, job_id, stale_before, now) is True
        assert repo.try_claim_analysis(inspection.id, job_id, stale_before, now) is False
        assert repo.try_claim_analysis(inspection.id, job_id, stale_before, now, resume=True) is True
        assert repo.try_claim_analysis(inspection.id, uuid.uuid4(), stale_before, now, resume=True) is False

    def test_stale_claim_can_be_taken_over(self, db_session, inspection_factory):
        old_claim = utcnow() - timedelta(hours=1)
        inspection = inspection_factory.create(
            db_session,
            status=InspectionStatus.ANALYZING,
            analysis_job_id=uuid.uuid4(),
            analysis_claimed_at=old_claim,
        )
        repo = InspectionRepository(db_session)
        now = utcnow()

        assert repo.try_claim_analysis(inspection.id, uuid.uuid4(), now - timedelta(minutes=15), now) is True

    def test_terminal_inspection_is_claimable_only_from_terminal(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.COMPLETED, completed_at=utcnow())
        repo = InspectionRepository(db_session)
        now = utcnow()
        stale_before = now - timedelta(minutes=15)

        assert repo.try_claim_analysis(inspection.id, uuid.uuid4(), stale_before, now) is False
        assert repo.try_claim_analysis(inspection.id, uuid.uuid4(), stale_before, now, from_terminal=True) is True
        db_session.commit()
        repo.refresh(inspection)
        assert inspection.status == InspectionStatus.ANALYZING
        assert inspection.completed_at is None

    def test_created_inspection_is_never_claimable(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.CREATED)
        repo = InspectionRepository(db_session)
        now = utcnow()
        assert repo.try_claim_analysis(
            inspection.id, uuid.uuid4(), now - timedelta(minutes=15), now, from_terminal=True,
        ) is False

    def test_release_claim_only_by_owner(self, db_session, inspection_factory):
        job_id = uuid.uuid4()
        inspection = inspection_factory.create(
            db_session, status=InspectionStatus.ANALYZING, analysis_job_id=job_id, analysis_claimed_at=utcnow(),
        )
        repo = InspectionRepository(db_session)

        assert repo.release_claim(inspection.id, uuid.uuid4()) is False
        assert repo.release_claim(inspection.id, job_id) is True
        db_session.commit()
        repo.refresh(inspection)
        assert inspection.status == InspectionStatus.ANALYSIS_PENDING
        assert inspection.analysis_job_id is None


class TestTryRequestAnalysis:

    def test_finished_inspection_goes_back_to_pending(self, db_session, inspection_factory):
        inspection = inspection_factory.create(db_session, status=InspectionStatus.COMPLETED, completed_at=utcnow())
        repo = InspectionRepository(db_session)

        assert repo.try_request_analysis(inspection.id, utcnow() - timedelta(minutes=15)) is True
        db_session.commit()
        repo.refresh(inspection)
        assert inspection.status == InspectionStatus.ANALYSIS_PENDING
        assert inspection.completed_at is None

    def test_live_run_blocks_request(self, db_session, inspection_factory):
        inspection = inspection_factory.create(
            db_session, status=InspectionStatus.ANALYZING,
            analysis_job_id=uuid.uuid4(), analysis_claimed_at=utcnow(),
        )
        repo = InspectionRepository(db_session)
        assert repo.try_request_analysis(inspection.id, utcnow() - timedelta(minutes=15)) is False

    def test_stale_run_is_abandoned(self, db_session, inspection_factory):
        inspection = inspection_factory.create(
            db_session, status=InspectionStatus.ANALYZING,
            analysis_job_id=uuid.uuid4(), analysis_claimed_at=utcnow() - timedelta(hours=1),
        )
        repo = InspectionRepository(db_session)

        assert repo.try_request_analysis(inspection.id, utcnow() - timedelta(minutes=15)) is True
        db_session.commit()
        repo.refresh(inspection)
        assert inspection.status == InspectionStatus.ANALYSIS_PENDING
        assert inspection.analysis_job_id is None
        assert inspection.analysis_claimed_at is None


class TestPaging:

    def test_pages_and_count(self, db_session, inspection_factory):
        first = inspection_factory.create(db_session, photos=0, started_at=utcnow() - timedelta(days=5))
        company, user = first.affiliated_company, first.user
        for days in range(4, 0, -1):
            inspection_factory.create(
                db_session, company=company, user=user, photos=0, started_at=utcnow() - timedelta(days=days),
            )
        repo = InspectionRepository(db_session)

        page_one = repo.get_by_organization(company.organization_id, offset=0, limit=2)
        page_three = repo.get_by_organization(company.organization_id, offset=4, limit=2)

        assert len(page_one) == 2
        assert [i.id for i in page_three] == [first.id]
        assert repo.count_by_organization(company.organization_id) == 5
        assert repo.count_by_organization(company.organization_id, user_id=uuid.uuid4()) == 0
