from pydantic import BaseModel
from typing import Dict, List, Literal, Optional


class GatedEmail(BaseModel):
    state: str  # hidden | pending | revealed
    available: bool
    cost: int
    value: Optional[str] = None


class GatedCalendly(BaseModel):
    state: str
    available: bool
    cost: int
    links: List[str] = []


class DirectoryRowResponse(BaseModel):
    row_key: str
    fields: Dict[str, str]
    tags: Dict[str, List[str]]
    email: GatedEmail
    calendly: GatedCalendly


class DirectoryPageResponse(BaseModel):
    query: str
    page: int
    total_pages: int
    total: int
    page_size: int
    tokens: int
    rows: List[DirectoryRowResponse]


class RevealRecordResponse(BaseModel):
    row_key: str
    title: str
    company: str
    email: Optional[str] = None
    calendly_links: List[str] = []


class RevealRequest(BaseModel):
    row_key: str
    field: Literal["email", "calendly"]


class RevealResponse(BaseModel):
    status: str
    field: str
    row_key: str
    message: str
    tokens: int
    reveal: Optional[RevealRecordResponse] = None


class DashboardResponse(BaseModel):
    user_id: int
    email: Optional[str] = None
    tokens: int
    reveals: Dict[str, RevealRecordResponse]


class LandingResponse(BaseModel):
    name: str
    tagline: str
    registered_count: int
    spots_left: int
