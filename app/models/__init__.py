from app.models.user import User
from app.models.reveal import Reveal
from app.models.token_log import TokenLog

__all__ = [
    "User",
    "Reveal",
    "TokenLog",
]
