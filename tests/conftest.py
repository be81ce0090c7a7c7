"""Test configuration."""
import os
import random
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# --- Default environment, set before the application is imported
DB_PATH = Path(__file__).resolve().parent / "milestone_escrow_test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{DB_PATH}")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from milestone_escrow.config import get_settings  # noqa: E402
from milestone_escrow.db import get_db  # noqa: E402
from milestone_escrow.main import app  # noqa: E402
from milestone_escrow.models import Base  # noqa: E402
from milestone_escrow.models.api_key import ApiKey, ApiScope  # noqa: E402
from milestone_escrow.models.project import Project, TokenType  # noqa: E402
from milestone_escrow.models.user import User, UserRole  # noqa: E402
from milestone_escrow.schemas.project import MilestoneIn, ProjectCreate  # noqa: E402
from milestone_escrow.services import milestones as milestone_service  # noqa: E402
from milestone_escrow.services import projects as project_service  # noqa: E402
from milestone_escrow.services import proposals as proposal_service  # noqa: E402
from milestone_escrow.services.coordinator import EscrowLifecycleCoordinator  # noqa: E402
from milestone_escrow.services.ledger import Confirmed, ContractCall, EscrowContract  # noqa: E402
from milestone_escrow.services.locks import ProjectLockRegistry  # noqa: E402
from milestone_escrow.services.stacks_node import C32_ALPHABET  # noqa: E402
from milestone_escrow.utils.apikey import hash_key  # noqa: E402


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file for the session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)
TestingSessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False
)

# --- (2) Build the schema through Alembic only
_run_migrations()


def _wipe_tables() -> None:
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db_session() -> Iterator[Session]:
    # The coordinator commits and rolls back on its own, so every test
    # starts from empty tables instead of an outer transaction.
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        _wipe_tables()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def random_address(prefix: str = "ST") -> str:
    return prefix + "".join(random.choices(C32_ALPHABET, k=38))


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(role: UserRole = UserRole.CLIENT, *, username: str | None = None) -> User:
        user = User(
            stx_address=random_address(),
            username=username or f"{role.value}-{uuid4().hex[:8]}",
            role=role,
            is_active=True,
            total_earned_stx=0,
            total_earned_sbtc=0,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_api_key(db_session: Session) -> Callable[..., ApiKey]:
    def _factory(
        name: str,
        key: str,
        scope: ApiScope = ApiScope.user,
        is_active: bool = True,
        user_id: int | None = None,
    ) -> ApiKey:
        api_key = ApiKey(
            name=name,
            prefix="test_" + scope.value,
            key_hash=hash_key(key),
            scope=scope,
            is_active=is_active,
            user_id=user_id,
        )
        db_session.add(api_key)
        db_session.commit()
        db_session.refresh(api_key)
        return api_key

    return _factory


@pytest.fixture
def headers_for(make_api_key: Callable[..., ApiKey]) -> Callable[[User], dict[str, str]]:
    """Bearer headers for a user-scope key bound to ``user``."""

    def _factory(user: User) -> dict[str, str]:
        token = f"user-{uuid4().hex}"
        make_api_key(name=f"user-{uuid4().hex}", key=token, scope=ApiScope.user, user_id=user.id)
        return {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def admin_headers(make_api_key: Callable[..., ApiKey]) -> dict[str, str]:
    token = f"admin-{uuid4().hex}"
    make_api_key(name=f"admin-{uuid4().hex}", key=token, scope=ApiScope.admin)
    return {"Authorization": f"Bearer {token}"}


class ScriptedBridge:
    """Ledger bridge that plays back queued outcomes, then confirms with fresh ids."""

    def __init__(self, *outcomes: object, value: object = None) -> None:
        self.outcomes = list(outcomes)
        self.value = value
        self.calls: list[ContractCall] = []

    async def execute(self, call: ContractCall):
        self.calls.append(call)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return Confirmed(tx_id=f"0x{uuid4().hex}", value=self.value)


@pytest.fixture
def lock_registry() -> ProjectLockRegistry:
    return ProjectLockRegistry()


@pytest.fixture
def make_coordinator(
    db_session: Session, lock_registry: ProjectLockRegistry
) -> Callable[..., EscrowLifecycleCoordinator]:
    def _factory(
        *,
        user: User | None = None,
        is_admin: bool = False,
        bridge: object | None = None,
        independent_release: bool = False,
    ) -> EscrowLifecycleCoordinator:
        return EscrowLifecycleCoordinator(
            db_session,
            bridge=bridge or ScriptedBridge(),
            locks=lock_registry,
            contract=EscrowContract.from_settings(get_settings()),
            independent_release=independent_release,
            actor=f"user:{user.id}" if user is not None else "admin",
            user=user,
            is_admin=is_admin,
        )

    return _factory


def project_payload(
    *, amounts: tuple[str, ...] = ("10", "20"), token: TokenType = TokenType.STX, **overrides: object
) -> ProjectCreate:
    data: dict[str, object] = {
        "title": "Landing page redesign",
        "description": "Rebuild the marketing site.",
        "category": "design",
        "token_type": token,
        "milestones": [
            MilestoneIn(title=f"Phase {num}", amount=Decimal(amount))
            for num, amount in enumerate(amounts, start=1)
        ],
    }
    data.update(overrides)
    return ProjectCreate(**data)


@pytest.fixture
def make_open_project(db_session: Session, make_user: Callable[..., User]) -> Callable[..., tuple[Project, User, User]]:
    """Open project with one accepted proposal, ready to be funded."""

    def _factory(
        *, amounts: tuple[str, ...] = ("10", "20"), token: TokenType = TokenType.STX
    ) -> tuple[Project, User, User]:
        client_user = make_user(UserRole.CLIENT)
        freelancer = make_user(UserRole.FREELANCER)
        project = project_service.create_project(
            db_session, project_payload(amounts=amounts, token=token), client=client_user, actor="test"
        )
        proposal = proposal_service.submit(
            db_session, project, freelancer_id=freelancer.id, cover_letter="Happy to help.", actor="test"
        )
        proposal_service.accept(db_session, proposal, project, actor="test")
        db_session.commit()
        return project, client_user, freelancer

    return _factory


@pytest.fixture
def make_active_project(
    db_session: Session, make_open_project: Callable[..., tuple[Project, User, User]]
) -> Callable[..., tuple[Project, User, User]]:
    def _factory(
        *,
        amounts: tuple[str, ...] = ("10", "20"),
        token: TokenType = TokenType.STX,
        independent_release: bool = False,
    ) -> tuple[Project, User, User]:
        project, client_user, freelancer = make_open_project(amounts=amounts, token=token)
        milestone_service.activate(
            db_session,
            project,
            escrow_tx_id=f"0x{uuid4().hex}",
            on_chain_id=7,
            independent_release=independent_release,
            actor="test",
        )
        db_session.commit()
        return project, client_user, freelancer

    return _factory
