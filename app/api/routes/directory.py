"""
Investor directory listing: search, pagination and per-user masking of the
gated columns.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import get_current_user
from app.dependencies.directory import get_directory
from app.models.user import User
from app.schemas.directory import DirectoryPageResponse
from app.services.dashboard import load_dashboard_state
from app.services.directory import Directory, filter_rows, paginate
from app.services.reveal_workflow import reveal_workflow

router = APIRouter()


@router.get("/directory", response_model=DirectoryPageResponse)
def list_directory(
    q: str = "",
    page: int = 1,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    directory: Directory = Depends(get_directory)
):
    """
    One page of the directory filtered by `q` (Title, Company, Position,
    Categories). A new search starts at page 1; page numbers past either end
    are clamped.
    """
    state = load_dashboard_state(db, user)
    result = paginate(filter_rows(directory.rows, q), page)

    return {
        "query": q,
        "page": result.page,
        "total_pages": result.total_pages,
        "total": result.total,
        "page_size": result.page_size,
        "tokens": state.tokens,
        "rows": [state.present_row(directory, row, reveal_workflow) for row in result.items],
    }
