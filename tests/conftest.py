import pytest
from datetime import datetime
from types import SimpleNamespace
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.core.clock import FixedClock
from app.core.db import Base, init_db
from app.core.events import EventBus
from app.core.lifecycle import TicketLifecycle
from app.core.accounts import UserAdministration
from app.core.store import TicketStore
from app.models.project import Profile, Project, ProjectMember

# Setup an in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

START = datetime(2026, 1, 5, 9, 0, 0)


def seed_world(db):
    """
    Two projects with distinct POs:
      alpha: po1 (po member), dev1 + dev2 (developer members)
      beta:  po2 (po member), dev1 (developer member)
    plus a global admin and a developer who belongs to no project.
    """
    users = {
        "admin": Profile(email="admin@alpi.dev", full_name="Ada Admin", role="admin"),
        "po1": Profile(email="po1@alpi.dev", full_name="Paula PO", role="developer"),
        "po2": Profile(email="po2@alpi.dev", full_name="Pete PO", role="developer"),
        "dev1": Profile(email="dev1@alpi.dev", full_name="D1", role="developer"),
        "dev2": Profile(email="dev2@alpi.dev", full_name="D2", role="developer"),
        "outsider": Profile(email="out@alpi.dev", full_name="Olly Outsider", role="developer"),
    }
    db.add_all(users.values())
    db.flush()

    alpha = Project(name="Alpha", slug="alpha", created_by=users["admin"].id)
    beta = Project(name="Beta", slug="beta", created_by=users["admin"].id)
    db.add_all([alpha, beta])
    db.flush()

    db.add_all([
        ProjectMember(project_id=alpha.id, user_id=users["po1"].id, role="po"),
        ProjectMember(project_id=alpha.id, user_id=users["dev1"].id, role="developer"),
        ProjectMember(project_id=alpha.id, user_id=users["dev2"].id, role="developer"),
        ProjectMember(project_id=beta.id, user_id=users["po2"].id, role="po"),
        ProjectMember(project_id=beta.id, user_id=users["dev1"].id, role="developer"),
    ])
    db.commit()
    return SimpleNamespace(
        alpha=alpha.id,
        beta=beta.id,
        **{name: profile.id for name, profile in users.items()},
    )


@pytest.fixture(scope="function")
def db_session():
    # Create the tables
    init_db(engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop the tables after the test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def world(db_session):
    return seed_world(db_session)


@pytest.fixture
def store(db_session):
    return TicketStore(db_session)


@pytest.fixture
def lifecycle(store, clock, bus):
    return TicketLifecycle(store, clock=clock, events=bus)


@pytest.fixture
def user_admin(store, clock, bus):
    return UserAdministration(store, clock=clock, events=bus)


@pytest.fixture
def new_ticket(lifecycle, world):
    def _create(project=None, priority="p2_medium", title="Login button does nothing", actor=None):
        return lifecycle.create_ticket(
            project or world.alpha,
            actor or world.po1,
            title=title,
            description="Steps: open /login, click the button.",
            priority=priority,
        )
    return _create
