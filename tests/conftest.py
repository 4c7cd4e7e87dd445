import os

# Settings are read at import time; point them at throwaway values first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-supabase-jwt-secret-0123456789abcdef")

import time
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import get_db
from app.main import app as fastapi_app
from app.services.directory import parse_directory
from app.services.identity import SupabaseAuthClient, get_identity_client

JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]

SAMPLE_CSV = (
    "Title,Position,Company,Email,Categories,City,Fund Stage,Calendly\n"
    'Alice,Partner,Acme,alice@acme.vc,"SaaS\nFintech",SF,Seed,"calendly.com/alice, http://www.calendly.com/alice/30"\n'
    "Bob,Principal,Beta,bob@beta.vc,Climate,Boston,Series A,\n"
    "Carol,Director,Gamma,,Healthcare,NYC,Seed,https://www.meetingsfor1000.com/calendly.com/carol\n"
    ",Associate,Nameless,ghost@example.com,,,,\n"
)


def make_token(sub="supabase-user-1", email="founder@example.com", secret=JWT_SECRET, **claims):
    payload = {
        "sub": sub,
        "email": email,
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_header(sub="supabase-user-1", email="founder@example.com"):
    return {"Authorization": f"Bearer {make_token(sub=sub, email=email)}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def directory():
    return parse_directory(SAMPLE_CSV)


@pytest.fixture
def identity():
    return MagicMock(spec=SupabaseAuthClient)


@pytest.fixture
def client(session_factory, directory, identity):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_identity_client] = lambda: identity
    fastapi_app.state.directory = directory

    # Not used as a context manager, so startup (migrations, CSV fetch) is skipped
    yield TestClient(fastapi_app)

    fastapi_app.dependency_overrides.clear()
    fastapi_app.state.directory = None
