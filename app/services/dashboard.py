"""
Dashboard state for one signed-in user: balance and reveals, plus how each
directory row looks to that user (gated fields masked until revealed).
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.token_costs import REVEAL_COSTS
from app.models.user import User
from app.services import reveal_store
from app.services.directory import Directory
from app.services.reveal_store import RevealRecord
from app.services.reveal_workflow import FieldKind, FieldState, RevealWorkflow, field_value

# Columns rendered as tag lists (one tag per line in the cell)
TAG_COLUMNS = ("Categories", "Fund Stage")


def split_tags(value: Optional[str]) -> List[str]:
    return [tag.strip() for tag in (value or "").split("\n") if tag.strip()]


@dataclass
class DashboardState:
    user_id: int
    email: Optional[str]
    tokens: int
    reveals: Dict[str, RevealRecord] = field(default_factory=dict)

    def reveal_for(self, row_key: str) -> Optional[RevealRecord]:
        return self.reveals.get(row_key)

    def present_row(self, directory: Directory, row: Dict[str, str], workflow: RevealWorkflow) -> Dict[str, Any]:
        """Public columns as-is; Email and the links column only once paid for."""
        row_key = directory.key_for(row)
        reveal = self.reveal_for(row_key)
        hidden_columns = {"Email", directory.last_column}

        email_state = workflow.field_state(self.user_id, row_key, FieldKind.EMAIL, reveal)
        calendly_state = workflow.field_state(self.user_id, row_key, FieldKind.CALENDLY, reveal)

        return {
            "row_key": row_key,
            "fields": {name: value for name, value in row.items() if name not in hidden_columns},
            "tags": {name: split_tags(row.get(name)) for name in TAG_COLUMNS},
            "email": {
                "state": email_state.value,
                "available": bool(field_value(FieldKind.EMAIL, row, directory)),
                "cost": REVEAL_COSTS["email"],
                "value": reveal.email if email_state == FieldState.REVEALED else None,
            },
            "calendly": {
                "state": calendly_state.value,
                "available": bool(field_value(FieldKind.CALENDLY, row, directory)),
                "cost": REVEAL_COSTS["calendly"],
                "links": list(reveal.calendly_links) if calendly_state == FieldState.REVEALED else [],
            },
        }


def load_dashboard_state(db: Session, user: User) -> DashboardState:
    return DashboardState(
        user_id=user.id,
        email=user.email,
        tokens=user.tokens,
        reveals=reveal_store.load_reveals(db, user.id),
    )
