"""
Tests for the directory loader, search filter and paginator.
"""
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.services.directory import (
    DatasetLoadFailure,
    Directory,
    filter_rows,
    load_directory,
    load_directory_or_empty,
    paginate,
    parse_directory,
    row_key,
)
from tests.conftest import SAMPLE_CSV


class TestParseDirectory:

    def test_rows_without_title_are_dropped(self, directory):
        assert [row["Title"] for row in directory.rows] == ["Alice", "Bob", "Carol"]

    def test_columns_keep_file_order(self, directory):
        assert directory.columns[0] == "Title"
        assert directory.last_column == "Calendly"

    def test_missing_cells_become_empty_strings(self, directory):
        bob = directory.rows[1]
        assert bob["Calendly"] == ""
        assert directory.rows[2]["Email"] == ""

    def test_multiline_cells_are_preserved(self, directory):
        assert directory.rows[0]["Categories"] == "SaaS\nFintech"

    def test_header_only_file(self):
        assert len(parse_directory("Title,Company\n")) == 0

    def test_empty_text_raises(self):
        with pytest.raises(DatasetLoadFailure):
            parse_directory("")


class TestRowKey:

    def test_key_is_percent_encoded_concatenation(self):
        row = {"Title": "Bob Lee", "Company": "Beta", "Email": "bob@beta.vc", "Calendly": ""}
        assert row_key(row) == "Bob%20Lee%7CBeta%7Cbob%40beta.vc%7C"

    def test_uses_trailing_column_raw_value(self, directory):
        alice = directory.rows[0]
        assert directory.key_for(alice).endswith("calendly.com%2Falice%2C%20http%3A%2F%2Fwww.calendly.com%2Falice%2F30")

    def test_lookup_by_key(self, directory):
        carol = directory.rows[2]
        assert directory.get(directory.key_for(carol)) is carol
        assert directory.get("missing") is None

    def test_identical_rows_collide_and_first_wins(self):
        rows = [
            {"Title": "Dup", "Company": "Co", "Email": "", "Position": "first", "Calendly": ""},
            {"Title": "Dup", "Company": "Co", "Email": "", "Position": "second", "Calendly": ""},
        ]
        directory = Directory(rows=rows, columns=list(rows[0]))
        assert directory.key_for(rows[0]) == directory.key_for(rows[1])
        assert directory.get(directory.key_for(rows[1]))["Position"] == "first"


class TestFilterRows:

    def test_matches_company_case_insensitively(self):
        rows = [{"Title": "Alice", "Company": "Acme"}, {"Title": "Bob", "Company": "Beta"}]
        assert filter_rows(rows, "ac") == [rows[0]]

    def test_blank_query_returns_everything(self, directory):
        assert filter_rows(directory.rows, "") == directory.rows
        assert filter_rows(directory.rows, "   ") == directory.rows
        assert filter_rows(directory.rows, None) == directory.rows

    def test_searches_position_and_categories(self, directory):
        assert [r["Title"] for r in filter_rows(directory.rows, "principal")] == ["Bob"]
        assert [r["Title"] for r in filter_rows(directory.rows, "FINTECH")] == ["Alice"]

    def test_other_columns_are_not_searched(self, directory):
        assert filter_rows(directory.rows, "boston") == []
        assert filter_rows(directory.rows, "alice@acme") == []


class TestPaginate:

    def rows(self, n):
        return [{"Title": f"Investor {i}"} for i in range(n)]

    def test_page_count(self):
        page = paginate(self.rows(45), 1)
        assert page.total_pages == 3
        assert page.total == 45
        assert len(page.items) == 20

    def test_last_page_is_partial(self):
        page = paginate(self.rows(45), 3)
        assert [r["Title"] for r in page.items][0] == "Investor 40"
        assert len(page.items) == 5

    def test_page_past_end_clamps(self):
        page = paginate(self.rows(45), 5)
        assert page.page == 3
        assert len(page.items) == 5

    def test_page_before_start_clamps(self):
        assert paginate(self.rows(45), 0).page == 1
        assert paginate(self.rows(45), -4).page == 1

    def test_no_rows(self):
        page = paginate([], 3)
        assert page.page == 1
        assert page.total_pages == 0
        assert page.items == []


class TestLoadDirectory:

    def test_loads_from_local_path(self, tmp_path):
        path = tmp_path / "directory.csv"
        path.write_text(SAMPLE_CSV, encoding="utf-8")
        directory = load_directory(str(path))
        assert len(directory) == 3

    def test_loads_from_url(self):
        response = MagicMock()
        response.content = SAMPLE_CSV.encode("utf-8")
        with patch("app.services.directory.requests.get", return_value=response) as mock_get:
            directory = load_directory("https://cdn.example.com/directory.csv", timeout=3)
        mock_get.assert_called_once_with("https://cdn.example.com/directory.csv", timeout=3)
        assert len(directory) == 3

    def test_network_error_is_dataset_failure(self):
        with patch("app.services.directory.requests.get", side_effect=requests.ConnectionError("down")):
            with pytest.raises(DatasetLoadFailure):
                load_directory("https://cdn.example.com/directory.csv")

    def test_missing_file_is_dataset_failure(self, tmp_path):
        with pytest.raises(DatasetLoadFailure):
            load_directory(str(tmp_path / "nope.csv"))

    def test_failure_degrades_to_empty_directory(self, tmp_path):
        directory = load_directory_or_empty(str(tmp_path / "nope.csv"))
        assert len(directory) == 0
        assert directory.last_column is None

    def test_bundled_sample_loads(self):
        directory = load_directory(str(Path(__file__).resolve().parent.parent / "app" / "data" / "directory.csv"))
        assert len(directory) == 3
        assert directory.last_column == "Calendly"
