"""Shared fixtures: a fresh SQLite database per test, a frozen clock and recording doubles."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import bcrypt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ctms.auth.identity import Actor
from ctms.database import Base
from ctms.models import User
from ctms.schemas.assessment import (
    CreateAssessmentRequest,
    QuestionIn,
    SubmitAssessmentRequest,
)
from ctms.schemas.record import AssignTrainingRequest
from ctms.schemas.training import CreateTrainingMasterRequest, CreateTrainingRequest
from ctms.services.container import build_services
from ctms.storage import repositories as repo

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
PASSWORD = "Correct-Horse-1"
# Low cost factor keeps the suite fast.
PASSWORD_HASH = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def notify(self, user_id, type, context):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((user_id, str(type), context))

    def of_type(self, type) -> list:
        return [s for s in self.sent if s[1] == str(type)]


class RecordingRenderer:
    def __init__(self):
        self.calls = []
        self.fail = False

    async def render(self, record, user, training, master, certificate_id):
        self.calls.append(certificate_id)
        if self.fail:
            raise RuntimeError("renderer unavailable")
        return f"https://certs.example.com/{certificate_id}.pdf"


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ctms.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def services(session_factory, clock, notifier, renderer):
    return build_services(session_factory, clock=clock, notifier=notifier, renderer=renderer)


async def _user(db, email, name, role, department="Production") -> User:
    user = User(
        email=email,
        name=name,
        department=department,
        role=role,
        password_hash=PASSWORD_HASH,
        created_at=T0,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db):
    return await _user(db, "admin@example.com", "Alex Admin", "Administrator", "Quality")


@pytest.fixture
async def employee_user(db):
    return await _user(db, "eve@example.com", "Eve Employee", "Employee")


@pytest.fixture
async def other_user(db):
    return await _user(db, "otto@example.com", "Otto Operator", "Employee", "Warehouse")


@pytest.fixture
def admin(admin_user):
    return Actor(user_id=admin_user.id, role="Administrator", ip_address="10.0.0.1")


@pytest.fixture
def employee(employee_user):
    return Actor(user_id=employee_user.id, role="Employee", ip_address="10.0.0.2")


@pytest.fixture
def other(other_user):
    return Actor(user_id=other_user.id, role="Employee")


class Workflow:
    """Drives the services through the usual admin and trainee steps."""

    def __init__(self, services, db, admin, clock):
        self.services = services
        self.db = db
        self.admin = admin
        self.clock = clock

    async def training(
        self,
        code="SOP-001",
        revision="1.0",
        validity_period=30,
        validity_unit="days",
        master_id=None,
        with_master=True,
    ):
        if with_master and master_id is None:
            master = await repo.get_master_by_code(self.db, code)
            if master is None:
                master = await self.services.catalogue.create_master(
                    self.db,
                    self.admin,
                    CreateTrainingMasterRequest(
                        training_code=code,
                        title=f"{code} title",
                        training_type="Document-driven",
                        validity_period=validity_period,
                        validity_unit=validity_unit,
                    ),
                )
            master_id = master.id
        created = await self.services.catalogue.create_training(
            self.db,
            self.admin,
            CreateTrainingRequest(
                code=code,
                revision=revision,
                title=f"{code} rev {revision}",
                master_id=master_id,
                document_url=f"/docs/{code}-{revision}.pdf",
            ),
        )
        training = await repo.get_training(self.db, created.training.id)
        training.retraining = created.retraining
        return training

    async def assessment(self, training, *, max_attempts=3, pass_percentage=80, questions=4):
        return await self.services.assessments.create_config(
            self.db,
            self.admin,
            CreateAssessmentRequest(
                training_id=training.id,
                pass_percentage=pass_percentage,
                max_attempts=max_attempts,
                questions=[
                    QuestionIn(
                        question_text=f"Question {i}?",
                        options=[f"A{i}", f"B{i}", f"C{i}", f"D{i}"],
                        correct_answer=f"A{i}",
                    )
                    for i in range(questions)
                ],
            ),
        )

    async def assign(self, training, *users, due_in_days=10):
        return await self.services.records.assign(
            self.db,
            self.admin,
            AssignTrainingRequest(
                training_id=training.id,
                due_date=self.clock() + timedelta(days=due_in_days),
                user_ids=[u.user_id for u in users],
            ),
        )

    async def prepare(self, actor, training):
        """Acknowledge the document and start the training."""
        await self.services.records.acknowledge_document(self.db, actor, training.id)
        return await self.services.records.start(self.db, actor, training.id)

    async def answers(self, training, correct):
        config = await repo.get_assessment_for_training(self.db, training.id)
        questions = await repo.list_questions(self.db, config.id)
        return {
            q.id: (q.correct_answer if i < correct else q.options[1])
            for i, q in enumerate(questions)
        }

    async def submit(self, actor, training, correct):
        return await self.services.assessments.submit(
            self.db,
            actor,
            SubmitAssessmentRequest(
                training_id=training.id, answers=await self.answers(training, correct)
            ),
        )

    async def audit(self, event_type=None, **filters):
        """Audit entries oldest first."""
        entries = await repo.list_audit_entries(self.db, event_type=event_type, limit=1000, **filters)
        return list(reversed(entries))


@pytest.fixture
def workflow(services, db, admin, clock):
    return Workflow(services, db, admin, clock)
