import os
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models import appointment, availability, notification  # noqa: E402,F401
from backend.models.user import User  # noqa: E402

# Thursday 1 January 2026, midnight UTC.
NOW = datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def mentor(db) -> User:
    user = User(email='mentor@example.org', name='Grace Mentor', role='mentor')
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def student(db) -> User:
    user = User(email='student@example.org', name='Sam Student', role='seminarian')
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def director(db) -> User:
    user = User(email='director@example.org', name='Dana Director', role='director')
    db.add(user)
    db.commit()
    return user
