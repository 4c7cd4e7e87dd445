"""
Investor directory: loads the static CSV, filters it by free-text search and
slices it into fixed-size pages.

Rows are kept exactly as they appear in the file (ordered column -> string).
The last column holds the comma-separated scheduling links.
"""
import csv
import io
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from app.core.config import settings
from app.core.token_costs import DIRECTORY_PAGE_SIZE

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("Title", "Company", "Position", "Categories")

# encodeURIComponent leaves these unescaped; keys must match what clients already store
_ROW_KEY_SAFE = "-_.!~*'()"


class DatasetLoadFailure(Exception):
    """The directory CSV could not be fetched or parsed."""


def row_key(row: Dict[str, str], last_column: Optional[str] = None) -> str:
    """
    Content-addressed identity for a row: Title|Company|Email|<last column>,
    percent-encoded. Rows sharing all four values share a key.
    """
    if last_column is None:
        last_column = list(row)[-1] if row else None
    trailing = (row.get(last_column) or "") if last_column is not None else ""
    raw = "|".join([row.get("Title") or "", row.get("Company") or "", row.get("Email") or "", trailing])
    return quote(raw, safe=_ROW_KEY_SAFE)


@dataclass
class Directory:
    rows: List[Dict[str, str]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    _index: Dict[str, Dict[str, str]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        for row in self.rows:
            # First row wins when two rows collide on the key
            self._index.setdefault(self.key_for(row), row)

    @classmethod
    def empty(cls) -> "Directory":
        return cls(rows=[], columns=[])

    @property
    def last_column(self) -> Optional[str]:
        return self.columns[-1] if self.columns else None

    def key_for(self, row: Dict[str, str]) -> str:
        return row_key(row, self.last_column)

    def links_cell(self, row: Dict[str, str]) -> str:
        if self.last_column is None:
            return ""
        return row.get(self.last_column) or ""

    def get(self, key: str) -> Optional[Dict[str, str]]:
        return self._index.get(key)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class Page:
    items: List[Dict[str, str]]
    page: int
    total_pages: int
    total: int
    page_size: int = DIRECTORY_PAGE_SIZE


def _read_source(source: str, timeout: float) -> str:
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.content.decode("utf-8-sig")
    with open(source, "r", encoding="utf-8-sig", newline="") as f:
        return f.read()


def parse_directory(text: str) -> Directory:
    """Parse header-row CSV text, dropping rows without a Title."""
    reader = csv.DictReader(io.StringIO(text))
    columns = list(reader.fieldnames or [])
    if not columns:
        raise DatasetLoadFailure("Directory CSV has no header row")

    rows = []
    for raw in reader:
        row = {name: (raw.get(name) or "") for name in columns}
        if not row.get("Title"):
            continue
        rows.append(row)
    return Directory(rows=rows, columns=columns)


def load_directory(source: Optional[str] = None, timeout: Optional[float] = None) -> Directory:
    """
    Fetch and parse the directory from a URL or a local path.
    Raises DatasetLoadFailure on any fetch or parse error.
    """
    source = source or settings.directory_csv_url or settings.directory_csv_path
    timeout = timeout if timeout is not None else settings.http_timeout_seconds
    try:
        text = _read_source(source, timeout)
        directory = parse_directory(text)
    except DatasetLoadFailure:
        raise
    except (requests.RequestException, OSError, UnicodeDecodeError, csv.Error) as e:
        raise DatasetLoadFailure(f"Could not load directory from {source}: {e}") from e
    logger.info("[DIRECTORY] Loaded %s rows (%s columns) from %s", len(directory), len(directory.columns), source)
    return directory


def load_directory_or_empty(source: Optional[str] = None) -> Directory:
    """Startup variant: a broken dataset degrades to an empty directory."""
    try:
        return load_directory(source)
    except DatasetLoadFailure as e:
        logger.error("[DIRECTORY] %s; serving an empty directory", e)
        return Directory.empty()


def filter_rows(rows: List[Dict[str, str]], query: Optional[str]) -> List[Dict[str, str]]:
    """Case-insensitive substring match on Title, Company, Position and Categories."""
    if not query or not query.strip():
        return list(rows)
    needle = query.lower()
    return [
        row for row in rows
        if any(needle in (row.get(name) or "").lower() for name in SEARCH_FIELDS)
    ]


def paginate(rows: List[Dict[str, str]], page: int = 1, page_size: int = DIRECTORY_PAGE_SIZE) -> Page:
    """Slice rows into a page; out-of-range page numbers are clamped, never rejected."""
    total = len(rows)
    total_pages = math.ceil(total / page_size) if total else 0
    page = max(1, min(page, max(total_pages, 1)))
    start = (page - 1) * page_size
    return Page(
        items=rows[start:start + page_size],
        page=page,
        total_pages=total_pages,
        total=total,
        page_size=page_size,
    )
