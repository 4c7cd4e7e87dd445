"""
Meetingsfor1000 Backend API
Investor directory with token-gated reveals.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config

# Log to stdout so the hosting platform captures it
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.routes import auth, users, directory as directory_router, reveals
from app.core.config import settings
from app.core.token_costs import MAX_FOUNDERS
from app.db.base import Base
from app.db.session import engine, get_db
# Import all models to ensure they're registered with Base
from app.models import User, Reveal, TokenLog  # noqa: F401
from app.schemas.directory import LandingResponse
from app.services.directory import load_directory_or_empty
from app.services.identity import AuthUser, get_identity_client


def run_migrations() -> None:
    """Run Alembic migrations on startup. Fails startup if a migration fails,
    so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise


def log_auth_transition(user: Optional[AuthUser]) -> None:
    if user is None:
        logger.info("[AUTH] Session ended")
    else:
        logger.info("[AUTH] Session started for %s", user.id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, run migrations, then load the directory CSV."""
    Base.metadata.create_all(bind=engine)
    run_migrations()

    app.state.directory = load_directory_or_empty()
    unsubscribe = get_identity_client().on_auth_state_change(log_auth_transition)
    try:
        yield
    finally:
        unsubscribe()


app = FastAPI(title="Meetingsfor1000", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(directory_router.router, prefix="/api", tags=["Directory"])
app.include_router(reveals.router, prefix="/api", tags=["Reveals"])


@app.get("/", response_model=LandingResponse)
def landing(db: Session = Depends(get_db)):
    """Landing page data: how many of the founder spots are still open."""
    try:
        registered = db.query(func.count(User.id)).scalar() or 0
    except SQLAlchemyError:
        # Counting is cosmetic; show the full allowance rather than fail the page
        db.rollback()
        logger.exception("Failed to get user count")
        registered = 0
    return LandingResponse(
        name="Meetingsfor1000",
        tagline="Book a meeting directly with a VC investor. Exclusively for 1000 founders",
        registered_count=registered,
        spots_left=max(0, MAX_FOUNDERS - registered),
    )
