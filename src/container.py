"""
Simple Dependency Injection container using Flask's g object.

No external DI framework needed - just factory functions that create
services with their dependencies, cached per-request in Flask g.
Process-wide collaborators (storage, scheduler, AI client) are built once.
"""
from functools import lru_cache

from flask import g

from src.database import get_db
from src.repositories.unit_of_work import UnitOfWork


def get_uow() -> UnitOfWork:
    """Get or create UnitOfWork for the current request."""
    if 'uow' not in g:
        db = next(get_db())
        g.uow = UnitOfWork(db)
    return g.uow


@lru_cache(maxsize=1)
def get_storage_service():
    from src.services.storage_service import StorageService
    return StorageService()


@lru_cache(maxsize=1)
def get_task_manager():
    from src.tasks import TaskManager
    return TaskManager()


@lru_cache(maxsize=1)
def get_analyzer():
    from src.services.ai_analyzer import OpenAIAnalyzer
    return OpenAIAnalyzer()


def get_inspection_service():
    """Get InspectionService for the current request."""
    from src.application.inspection_service import InspectionService
    return InspectionService(get_uow(), storage=get_storage_service(), task_manager=get_task_manager())


def get_orchestrator():
    """Get AnalysisOrchestrator bound to the current request's UnitOfWork."""
    from src.services.analysis_orchestrator import AnalysisOrchestrator
    return AnalysisOrchestrator(get_uow(), analyzer=get_analyzer(), storage=get_storage_service())


def get_job_processor():
    """Get JobProcessor for the worker endpoint."""
    from src.services.job_processor import JobProcessor
    return JobProcessor(get_uow(), orchestrator=get_orchestrator())


def teardown_uow(exception=None):
    """
    Teardown handler for Flask app context.

    Register with: app.teardown_appcontext(teardown_uow)
    """
    uow = g.pop('uow', None)
    if uow:
        if exception:
            uow.rollback()
        uow.close()
