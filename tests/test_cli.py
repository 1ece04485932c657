"""Tests for the SealedReview CLI — proves CLI dispatches correctly."""

import json

import pytest

from conftest import FakeLedger
from sealedreview import cli
from sealedreview.cli import build_parser, main
from sealedreview.errors import LedgerFault


@pytest.fixture
def seeded(monkeypatch: pytest.MonkeyPatch) -> FakeLedger:
    ledger = FakeLedger()
    ledger.seed("review-1", title="Graph Isomorphism", public_score=4, created_at=ledger.now - 10)
    ledger.seed("review-2", title="Protein Folding", score=8, public_score=2, verified=True)
    monkeypatch.setattr(cli, "_make_ledger", lambda env_file: ledger)
    return ledger


class TestCLIParsing:
    def test_list_with_search(self) -> None:
        args = build_parser().parse_args(["list", "--search", "graph"])
        assert args.command == "list"
        assert args.search == "graph"

    def test_stats_window(self) -> None:
        args = build_parser().parse_args(["stats", "--window-days", "30"])
        assert args.window_days == 30

    def test_show_requires_id(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["show"])


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_ping(self, seeded: FakeLedger, capsys: pytest.CaptureFixture) -> None:
        assert main(["ping"]) == 0
        assert json.loads(capsys.readouterr().out) == {"available": True}

    def test_ping_unavailable(self, seeded: FakeLedger) -> None:
        seeded.available = False
        assert main(["ping"]) == 1

    def test_list_sorted_by_creation(self, seeded: FakeLedger, capsys: pytest.CaptureFixture) -> None:
        assert main(["list"]) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["record_id"] for r in rows] == ["review-1", "review-2"]
        assert rows[0]["clear_value"] is None
        assert rows[0]["state"] == "pending"
        assert rows[1]["clear_value"] == 8

    def test_list_search(self, seeded: FakeLedger, capsys: pytest.CaptureFixture) -> None:
        assert main(["list", "--search", "protein"]) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["record_id"] for r in rows] == ["review-2"]

    def test_stats(self, seeded: FakeLedger, capsys: pytest.CaptureFixture) -> None:
        assert main(["stats"]) == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["total_count"] == 2
        assert stats["verified_count"] == 1
        assert stats["average_public_score"] == 3.0

    def test_show_missing(self, seeded: FakeLedger, capsys: pytest.CaptureFixture) -> None:
        assert main(["show", "--id", "review-404"]) == 1
        assert "Record not found: review-404" in capsys.readouterr().err

    def test_ledger_failure_returns_error(self, seeded: FakeLedger, capsys: pytest.CaptureFixture) -> None:
        seeded.list_ids_error = LedgerFault("rpc down")
        assert main(["list"]) == 1
        assert "Failed:" in capsys.readouterr().err
