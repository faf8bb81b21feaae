"""
Shared fixtures: a throwaway SQLite database per test, a pinned clock and a
TestClient whose auth and clock dependencies are overridden.
"""

from datetime import datetime

import pytest
from fastapi import Depends, HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from consultbook.auth import get_current_user, require_admin
from consultbook.database import Base, build_engine, get_db
from consultbook.main import app
from consultbook.models import Appointment, AppointmentStatus, AppointmentType, User
from consultbook.shared.clock import FixedClock, get_clock

# Monday 4 March 2024, 08:00 UTC
NOW = datetime(2024, 3, 4, 8, 0)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def client_user(db):
    user = User(firebase_uid="client-uid", email="client@example.com", full_name="Ada Client")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db):
    user = User(firebase_uid="admin-uid", email="admin@example.com", full_name="Admin", role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_appointment(db, client_user):
    """Insert an appointment directly in the given state"""

    def _make(
        date="2024-03-05",
        timeslot="10:00",
        status=AppointmentStatus.CONFIRMED,
        type=AppointmentType.INITIAL,
        user=None,
        late_reschedule=False,
    ) -> Appointment:
        owner = user or client_user
        appointment = Appointment(
            user_id=owner.id,
            date=date,
            timeslot=timeslot,
            type=AppointmentType(type).value,
            status=AppointmentStatus(status).value,
            email=owner.email,
            name=owner.full_name,
            late_reschedule=late_reschedule,
            created_at=NOW,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


@pytest.fixture
def api(session_factory, clock):
    """TestClient with database, clock and auth dependencies overridden"""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(api):
    """``login(user)`` makes subsequent requests run as ``user``"""

    def _login(user: User) -> None:
        user_id = user.id

        def override_current_user(db: Session = Depends(get_db)) -> User:
            return db.get(User, user_id)

        def override_require_admin(current: User = Depends(get_current_user)) -> User:
            if current.role != "admin":
                raise HTTPException(status_code=403, detail="Admin access required")
            return current

        app.dependency_overrides[get_current_user] = override_current_user
        app.dependency_overrides[require_admin] = override_require_admin

    return _login
