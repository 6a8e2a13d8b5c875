"""
Unit of Work pattern for managing database transactions.

Provides a single entry point for all repositories within a request or a
worker run, ensuring consistent transaction management.
"""
from .inspection_repository import InspectionRepository
from .photo_repository import PhotoRepository
from .company_repository import CompanyRepository
from .job_repository import JobRepository


class UnitOfWork:
    """
    Aggregates all repositories and manages the database session lifecycle.

    Usage:
        uow = UnitOfWork(session)
        inspection = uow.inspections.get_by_id(inspection_id, organization_id)
        uow.inspections.add(inspection)
        uow.commit()
    """

    def __init__(self, session):
        self.session = session
        self.inspections = InspectionRepository(session)
        self.photos = PhotoRepository(session)
        self.companies = CompanyRepository(session)
        self.jobs = JobRepository(session)

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def flush(self):
        self.session.flush()

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
        self.close()
        return False
