"""
Tests for the shoal-fetch entry point with the fetcher replaced by a stub.

Run: uv run pytest tests/test_cli.py -v
"""

import polars as pl
import pytest

from shoal import cli
from shoal.config import CATEGORIES
from shoal.fetcher import RAW_SCHEMA
from shoal.panel import load_panel_csv


class _StubFetcher:
    """Records the fetch call and returns a canned raw frame."""

    calls: list[dict] = []
    raw = pl.DataFrame(schema=RAW_SCHEMA)
    failures: dict[int, str] = {}

    def __init__(self, cache_dir=None, **kwargs):
        self.cache_dir = cache_dir

    def fetch_panel(self, region_ids, year_start, year_end, max_waves=2):
        self.calls.append(
            {"regions": list(region_ids), "years": (year_start, year_end), "waves": max_waves}
        )
        return self.raw, self.failures


@pytest.fixture
def stub(monkeypatch):
    _StubFetcher.calls = []
    _StubFetcher.failures = {}
    monkeypatch.setattr(cli, "SauFetcher", _StubFetcher)
    return _StubFetcher


class TestMain:
    def test_writes_completed_panel(self, stub, tmp_path, capsys):
        stub.raw = pl.DataFrame(
            [
                {"region_id": 5, "year": 2000, "group": "Pelagic (<30 cm)", "tonnes": 10.0},
                {"region_id": 5, "year": 2000, "group": "Pelagic (30 - 89 cm)", "tonnes": 5.0},
                {"region_id": 5, "year": 2001, "group": "Shark (>=90 cm)", "tonnes": 2.0},
            ],
            schema=RAW_SCHEMA,
        )
        stub.failures = {6: "permanent: HTTP 404"}
        out = tmp_path / "panel.csv"

        code = cli.main(
            [
                "--regions", "5,6",
                "--year-start", "2000",
                "--year-end", "2001",
                "--output", str(out),
                "--cache-dir", str(tmp_path / "cache"),
                "--retry-waves", "0",
            ]
        )

        assert code == 0
        assert stub.calls == [{"regions": [5, 6], "years": (2000, 2001), "waves": 0}]
        panel = load_panel_csv(out)
        assert panel.height == 2 * len(CATEGORIES)
        pelagic = panel.filter((pl.col("year") == 2000) & (pl.col("category") == "pelagic"))
        assert pelagic["value"].to_list() == [15.0]
        assert "region 6 skipped" in capsys.readouterr().out

    def test_no_regions_fetched_is_failure(self, stub, tmp_path):
        stub.raw = pl.DataFrame(schema=RAW_SCHEMA)
        code = cli.main(["--regions", "1", "--output", str(tmp_path / "p.csv")])
        assert code == 1

    def test_default_regions(self, stub, tmp_path):
        stub.raw = pl.DataFrame(schema=RAW_SCHEMA)
        cli.main(["--output", str(tmp_path / "p.csv")])
        assert stub.calls[0]["regions"] == list(range(1, 67))
