"""
API endpoints for revealing gated directory fields and listing past reveals.
"""
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import get_current_user
from app.dependencies.directory import get_directory
from app.models.user import User
from app.schemas.directory import RevealRecordResponse, RevealRequest, RevealResponse
from app.services import reveal_store, token_ledger
from app.services.directory import Directory
from app.services.reveal_workflow import RevealStatus, reveal_workflow

router = APIRouter()


@router.get("/reveals", response_model=List[RevealRecordResponse])
def list_reveals(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Everything the current user has revealed, oldest first."""
    return [RevealRecordResponse(**asdict(record)) for record in reveal_store.load_reveals(db, user.id).values()]


@router.post("/reveals", response_model=RevealResponse)
def reveal_field(
    request: RevealRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    directory: Directory = Depends(get_directory)
):
    """
    Spend tokens to reveal a row's email (5) or scheduling links (10).
    Already revealed fields are returned without charging again.
    """
    row = directory.get(request.row_key)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Directory row not found"
        )

    outcome = reveal_workflow.reveal(
        db, user.id, row, request.field, directory,
        defer=background_tasks.add_task,
    )

    if outcome.status == RevealStatus.INSUFFICIENT:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=outcome.message or "Not enough tokens"
        )
    if outcome.status == RevealStatus.UNAVAILABLE:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=outcome.message or "Reveal failed. Please try again."
        )
    if outcome.status == RevealStatus.PENDING:
        response.status_code = status.HTTP_202_ACCEPTED

    tokens = outcome.remaining
    if tokens is None:
        tokens = token_ledger.get_balance(db, user.id)

    return RevealResponse(
        status=outcome.status.value,
        field=outcome.kind.value,
        row_key=outcome.row_key,
        message=outcome.message,
        tokens=tokens,
        reveal=RevealRecordResponse(**asdict(outcome.reveal)) if outcome.reveal else None,
    )
