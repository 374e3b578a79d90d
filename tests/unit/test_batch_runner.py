"""Unit tests for the batch driver.

Tests cover:
- Failure isolation and result ordering
- Report built from successful records only
- Record file loading
- Command line entry point
"""

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from pipeline.batch.runner import BatchRunner, load_records, main
from services.normalization.errors import InvalidInputShape
from services.shared.config import Settings


def make_record(number: str, **header: Any) -> dict[str, Any]:
    return {
        "header": {"number": number, "issueDate": "2025-01-01", "currency": "EUR", **header},
        "seller": {"name": "Seller B.V."},
        "buyer": {"name": "Buyer"},
        "lines": [{"quantity": 2, "price": 50, "vatRate": 21}],
    }


@pytest.fixture
def runner() -> BatchRunner:
    """Create batch runner with two workers."""
    return BatchRunner(Settings(_env_file=None, batch_max_workers=2))


class TestBatchRunner:
    """Test batch processing."""

    def test_all_records_processed_in_order(self, runner: BatchRunner) -> None:
        records = [make_record(f"INV-{i}") for i in range(6)]

        result = runner.run(records)

        assert [p.index for p in result.processed] == list(range(6))
        assert [p.score.invoice_number for p in result.processed] == [
            f"INV-{i}" for i in range(6)
        ]
        assert result.failures == []
        assert result.report.total_invoices == 6

    def test_failures_isolated(self, runner: BatchRunner) -> None:
        records = [
            make_record("INV-1"),
            {"header": {"number": "INV-2", "issueDate": "2025-01-01"}, "lines": []},
            make_record("INV-3"),
            {"header": {"number": "INV-4"}, "lines": "not a list"},
        ]

        result = runner.run(records)

        assert [p.index for p in result.processed] == [0, 2]
        assert [(f.index, f.error_type) for f in result.failures] == [
            (1, "MissingMandatoryField"),
            (3, "InvalidInputShape"),
        ]
        assert result.failures[0].invoice_number == "INV-2"
        assert result.failures[0].path == "seller.name"
        assert result.failures[1].path == "lines"
        assert result.report.total_invoices == 2

    def test_unexpected_error_recorded(self, runner: BatchRunner) -> None:
        """An unexpected error fails only its record."""
        records = [make_record("INV-1"), make_record("INV-2")]
        normalize = runner.normalizer.normalize

        def flaky(raw: Any, ledger: Any = None) -> Any:
            if raw["header"]["number"] == "INV-2":
                raise RuntimeError("boom")
            return normalize(raw, ledger)

        with patch.object(runner.normalizer, "normalize", side_effect=flaky):
            result = runner.run(records)

        assert len(result.processed) == 1
        assert result.failures[0].error_type == "RuntimeError"
        assert result.failures[0].path is None
        assert result.failures[0].message == "boom"

    def test_report_aggregates_processed(self, runner: BatchRunner) -> None:
        records = [make_record("INV-1"), make_record("INV-2", dueDate="2025-02-01")]

        report = runner.run(records).report

        assert report.invoices_with_synthetic_data == 2
        assert report.total_synthetic_fields == 7
        assert report.top_missing_fields[0].count == 2
        assert report.top_missing_fields[-1].path == "payment"
        assert report.top_missing_fields[-1].percentage == 50.0

    def test_empty_batch(self, runner: BatchRunner) -> None:
        result = runner.run([])

        assert result.processed == []
        assert result.report.total_invoices == 0


class TestLoadRecords:
    """Test record file loading."""

    def test_list(self, tmp_path: Path) -> None:
        path = tmp_path / "records.json"
        path.write_text(json.dumps([make_record("INV-1")]), encoding="utf-8")

        assert load_records(path)[0]["header"]["number"] == "INV-1"

    def test_records_object(self, tmp_path: Path) -> None:
        path = tmp_path / "records.json"
        path.write_text(json.dumps({"records": [make_record("INV-1")]}), encoding="utf-8")

        assert len(load_records(path)) == 1

    def test_invalid_document(self, tmp_path: Path) -> None:
        path = tmp_path / "records.json"
        path.write_text(json.dumps({"invoice": make_record("INV-1")}), encoding="utf-8")

        with pytest.raises(InvalidInputShape):
            load_records(path)


class TestMain:
    """Test the command line entry point."""

    def test_success(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "records.json"
        path.write_text(json.dumps([make_record("INV-1")]), encoding="utf-8")

        exit_code = main([str(path), "--workers", "1"])

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["report"]["totalInvoices"] == 1
        assert output["failures"] == []

    def test_failures_set_exit_code(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "records.json"
        path.write_text(json.dumps([make_record("INV-1"), {"header": {}}]), encoding="utf-8")

        exit_code = main([str(path)])

        assert exit_code == 1
        output = json.loads(capsys.readouterr().out)
        assert output["failures"][0]["path"] == "header.number"

    @pytest.mark.parametrize(
        "content",
        ["{not json", json.dumps({"invoice": make_record("INV-1")}), json.dumps("records")],
        ids=["invalid-json", "object-without-records", "string"],
    )
    def test_unreadable_input_exits_with_error(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
        caplog: pytest.LogCaptureFixture,
        content: str,
    ) -> None:
        path = tmp_path / "records.json"
        path.write_text(content, encoding="utf-8")

        exit_code = main([str(path)])

        assert exit_code == 2
        assert capsys.readouterr().out == ""
        assert "Cannot read records from" in caplog.text

    def test_missing_input_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = main([str(tmp_path / "absent.json")])

        assert exit_code == 2
        assert capsys.readouterr().out == ""
