import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.models_db import Base
from tests.factories.model_factories import (
    CompanyFactory,
    InspectionFactory,
    OrganizationFactory,
    UserFactory,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def organization_factory():
    return OrganizationFactory


@pytest.fixture
def company_factory():
    return CompanyFactory


@pytest.fixture
def user_factory():
    return UserFactory


@pytest.fixture
def inspection_factory():
    return InspectionFactory
