"""Shared fixtures: in-memory database, seeded organization, API client."""

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from invoicing.api import deps
from invoicing.api.main import app
from invoicing.database.models import Base, Invoice, Organization, OrganizationMember, Project
from invoicing.database.session import get_session
from invoicing.ingestion.dispatcher import WorkflowDispatcher
from invoicing.shared.config import Settings
from invoicing.storage.service import StorageService
from tests.helpers import (
    EMPLOYEE_ID,
    ORG_ID,
    OTHER_ORG_ID,
    OUTSIDER_ID,
    OWNER_ID,
    WORKFLOW_URL,
    RecordingPublisher,
    auth_headers,
)


@pytest.fixture
def settings() -> Settings:
    """Create test settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        app_url="http://testserver",
        extraction_webhook_url=WORKFLOW_URL,
        extraction_webhook_secret=None,
        storage_enabled=False,
        realtime_enabled=False,
    )


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture
def organization(session: Session) -> Organization:
    """Organization with one owner and one employee, plus an unrelated organization."""
    org = Organization(id=ORG_ID, name="Acme d.o.o.")
    other = Organization(id=OTHER_ORG_ID, name="Other d.o.o.")
    session.add_all([org, other])
    session.add_all(
        [
            OrganizationMember(organization_id=ORG_ID, user_id=OWNER_ID, role="owner"),
            OrganizationMember(organization_id=ORG_ID, user_id=EMPLOYEE_ID, role="employee"),
            OrganizationMember(organization_id=OTHER_ORG_ID, user_id=OUTSIDER_ID, role="owner"),
        ]
    )
    session.commit()
    return org


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def workflow_requests() -> list[httpx.Request]:
    """Requests received by the fake extraction workflow."""
    return []


@pytest.fixture
def workflow_response() -> dict[str, Any]:
    """How the fake workflow answers; tests may mutate it."""
    return {"status_code": 200, "json": {"message": "Workflow was started"}}


@pytest.fixture
def dispatcher(
    settings: Settings,
    workflow_requests: list[httpx.Request],
    workflow_response: dict[str, Any],
) -> Generator[WorkflowDispatcher, None, None]:
    def handler(request: httpx.Request) -> httpx.Response:
        workflow_requests.append(request)
        if "error" in workflow_response:
            raise workflow_response["error"]
        return httpx.Response(workflow_response["status_code"], json=workflow_response["json"])

    dispatcher = WorkflowDispatcher(settings, transport=httpx.MockTransport(handler))
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def storage() -> MagicMock:
    return MagicMock(spec=StorageService)


@pytest.fixture
def make_invoice(session: Session) -> Callable[..., Invoice]:
    """Insert an invoice row directly, bypassing the lifecycle."""

    def _make(**values: Any) -> Invoice:
        values.setdefault("organization_id", ORG_ID)
        values.setdefault("user_id", OWNER_ID)
        values.setdefault("status", "processing")
        values.setdefault("invoice_type", "incoming")
        values.setdefault("file_url", "https://files.test/invoice.pdf")
        values.setdefault("file_type", "pdf")
        values.setdefault("line_items", [])
        values.setdefault("extraction_confidence", {})
        invoice = Invoice(**values)
        session.add(invoice)
        session.commit()
        session.refresh(invoice)
        return invoice

    return _make


@pytest.fixture
def make_project(session: Session) -> Callable[..., Project]:
    def _make(**values: Any) -> Project:
        values.setdefault("organization_id", ORG_ID)
        values.setdefault("name", "Office")
        project = Project(**values)
        session.add(project)
        session.commit()
        session.refresh(project)
        return project

    return _make


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return auth_headers(OWNER_ID)


@pytest.fixture
def employee_headers() -> dict[str, str]:
    return auth_headers(EMPLOYEE_ID)


@pytest.fixture
def client(
    session_factory: sessionmaker[Session],
    organization: Organization,
    settings: Settings,
    publisher: RecordingPublisher,
    dispatcher: WorkflowDispatcher,
    storage: MagicMock,
) -> Generator[TestClient, None, None]:
    """API client wired to the in-memory database and fake collaborators."""

    def override_session() -> Generator[Session, None, None]:
        with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[deps.get_app_settings] = lambda: settings
    app.dependency_overrides[deps.get_publisher] = lambda: publisher
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[deps.get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()
