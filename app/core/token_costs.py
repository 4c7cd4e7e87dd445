from typing import Dict

# Every new account starts with this many tokens; there is no top-up path
STARTING_TOKENS = 100

# Cost per row, billed once per (user, row, field kind)
REVEAL_COSTS: Dict[str, int] = {
    "email": 5,
    "calendly": 10,  # flat, however many links the row carries
}

COST_EMAIL = REVEAL_COSTS["email"]
COST_CALENDLY = REVEAL_COSTS["calendly"]

DIRECTORY_PAGE_SIZE = 20

# Landing page shows spots left out of this many founders
MAX_FOUNDERS = 1000


def get_reveal_cost(field_kind: str) -> int:
    """Return the token cost for a field kind. Raises KeyError for unknown kinds."""
    return REVEAL_COSTS[field_kind]
