"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session: in-memory SQLite (or DATABASE_URL) with a
  per-test outer transaction that is rolled back afterwards
- model factories (make_user, make_plan, make_subscription, make_template,
  make_content_item)
- design_tool_client: AsyncMock standing in for DesignToolClient
- verifier_store: fresh InMemoryVerifierStore
- temp_config_dir / make_yaml_config: YAML config files in a temp dir
"""

import os
import tempfile
import uuid
import pytest
import yaml
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-for-unit-tests")
os.environ.setdefault("DESIGN_TOOL_CLIENT_ID", "test-client-id")
os.environ.setdefault("DESIGN_TOOL_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("DESIGN_TOOL_REDIRECT_URI", "http://localhost:8000/api/design-tool/callback")


def _get_test_database_url() -> str:
    """Get database URL for tests."""
    database_url = os.getenv("DATABASE_URL")

    if database_url:
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)
        return database_url

    # Default to SQLite for unit tests if no PostgreSQL available
    return "sqlite:///:memory:"


def _is_postgres() -> bool:
    """Check if using PostgreSQL."""
    return _get_test_database_url().startswith("postgresql")


@pytest.fixture(scope="session")
def db_engine():
    """
    Create database engine for tests.

    Uses PostgreSQL if DATABASE_URL is set, otherwise SQLite in-memory.
    """
    database_url = _get_test_database_url()

    if _is_postgres():
        try:
            engine = create_engine(database_url, pool_pre_ping=True)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            pytest.skip(
                f"PostgreSQL not available. Set DATABASE_URL or use SQLite. Error: {e}"
            )
    else:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    from src.db_base import Base
    import src.models  # noqa: F401 - registers every table

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create database session with transaction rollback for test isolation.

    Service-level commits stay inside the outer transaction, which is
    rolled back when the test completes.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=connection)
    session = SessionLocal()

    if _is_postgres():
        nested = connection.begin_nested()

        @event.listens_for(session, "after_transaction_end")
        def restart_savepoint(session, transaction):
            nonlocal nested
            if transaction.nested and not transaction._parent.nested:
                nested = connection.begin_nested()

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


# =============================================================================
# Model factories
# =============================================================================


@pytest.fixture
def make_user(db_session):
    """Factory for User rows."""
    from src.models.user import User, UserRole

    def _make(role: str = UserRole.USER.value, team_access: bool = False, **kwargs) -> User:
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=kwargs.pop("email", f"user-{suffix}@example.com"),
            name=kwargs.pop("name", f"User {suffix}"),
            role=role,
            team_access=team_access,
            **kwargs,
        )
        db_session.add(user)
        db_session.flush()
        return user
    return _make


@pytest.fixture
def make_admin(make_user):
    from src.models.user import UserRole

    def _make(**kwargs):
        return make_user(role=UserRole.ADMIN.value, team_access=True, **kwargs)
    return _make


@pytest.fixture
def make_plan(db_session):
    """Factory for Plan rows."""
    from src.models.plan import Plan

    def _make(slug: str, name: str, **kwargs) -> Plan:
        plan = Plan(slug=slug, name=name, **kwargs)
        db_session.add(plan)
        db_session.flush()
        return plan
    return _make


@pytest.fixture
def make_subscription(db_session):
    """Factory that creates a Subscription and links it to the user."""
    from src.models.subscription import Subscription, SubscriptionStatus

    def _make(user, plan_name: str = "pro", status: str = SubscriptionStatus.ACTIVE.value, **kwargs):
        subscription = Subscription(
            user_id=user.id,
            external_customer_id=kwargs.pop("external_customer_id", f"cus_{uuid.uuid4().hex[:12]}"),
            external_subscription_id=kwargs.pop(
                "external_subscription_id", f"sub_{uuid.uuid4().hex[:12]}"
            ),
            plan_name=plan_name,
            status=status,
            **kwargs,
        )
        db_session.add(subscription)
        db_session.flush()
        user.subscription_id = subscription.id
        db_session.flush()
        return subscription
    return _make


@pytest.fixture
def make_template(db_session):
    """Factory for published Template rows."""
    from src.models.template import Template, ContentType

    def _make(title: str = None, is_published: bool = True, **kwargs) -> Template:
        template = Template(
            title=title or f"Template {uuid.uuid4().hex[:6]}",
            description=kwargs.pop("description", "A template"),
            content_type=kwargs.pop("content_type", ContentType.POST.value),
            share_url=kwargs.pop("share_url", "https://design.example.com/t/abc/edit"),
            is_published=is_published,
            published_at=kwargs.pop(
                "published_at", datetime.now(timezone.utc) if is_published else None
            ),
            created_by_admin=kwargs.pop("created_by_admin", "admin-1"),
            **kwargs,
        )
        db_session.add(template)
        db_session.flush()
        return template
    return _make


@pytest.fixture
def make_content_item(db_session):
    from src.models.content_item import ContentItem

    def _make(title: str = "Content item", **kwargs) -> ContentItem:
        item = ContentItem(title=title, **kwargs)
        db_session.add(item)
        db_session.flush()
        return item
    return _make


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def design_tool_client():
    """AsyncMock standing in for DesignToolClient."""
    client = MagicMock()
    client.scopes = ["design:content:read", "design:meta:read"]
    client.build_authorization_url = MagicMock(
        side_effect=lambda challenge, state: (
            f"https://design.example.com/oauth/authorize?code_challenge={challenge}&state={state}"
        )
    )
    client.exchange_code = AsyncMock()
    client.refresh_token = AsyncMock()
    client.get_user = AsyncMock()
    client.list_templates = AsyncMock()
    client.find_team_member = AsyncMock(return_value=None)
    client.provision_member = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def verifier_store():
    from src.services.verifier_store import InMemoryVerifierStore

    return InMemoryVerifierStore(ttl_seconds=600)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")


# =============================================================================
# Shared Config Fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("plans.yml", {"plans": [...]})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
