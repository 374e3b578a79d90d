"""Batch driver: normalize and score a collection of raw invoice records.

Records are independent, so each normalize -> score pipeline runs on a
worker thread. A fatal error only fails its own record; it is recorded
against the record and the batch continues. The batch report is built once
every record has finished.

Run with:
    python -m pipeline.batch.runner data/records.json
"""

import argparse
import json
import logging
import sys
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from pipeline.batch import metrics
from services.normalization.errors import InvalidInputShape, NormalizationError
from services.normalization.service import NormalizationResult, Normalizer
from services.scoring.engine import RecordScore, score_record
from services.scoring.report import BatchReport, aggregate
from services.shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


class BatchModel(BaseModel):
    """Base for batch output: camelCase serialization."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordFailure(BatchModel):
    """A record that could not be normalized.

    Attributes:
        index: Position of the record in the batch
        invoice_number: Invoice number from the raw record, if readable
        error_type: Exception class name (MissingMandatoryField, InvalidInputShape...)
        path: Dotted path of the offending field, if known
        message: Error message
    """

    index: int
    invoice_number: str | None = None
    error_type: str
    path: str | None = None
    message: str


class ProcessedRecord(BatchModel):
    """A normalized record with its score."""

    index: int
    result: NormalizationResult
    score: RecordScore


class BatchResult(BatchModel):
    """Outcome of a batch run."""

    processed: list[ProcessedRecord]
    failures: list[RecordFailure]
    report: BatchReport


def _raw_invoice_number(raw: Any) -> str | None:
    if isinstance(raw, Mapping) and isinstance(raw.get("header"), Mapping):
        number = raw["header"].get("number")
        return str(number) if number is not None else None
    return None


class BatchRunner:
    """Runs records through normalization and scoring concurrently."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize batch runner.

        Args:
            settings: Application settings (defaults to environment settings)
        """
        self.settings = settings or get_settings()
        self.normalizer = Normalizer(self.settings)

    def process(self, index: int, raw: Mapping[str, Any]) -> ProcessedRecord:
        """Normalize and score a single record.

        Raises:
            NormalizationError: If the record cannot be normalized
        """
        result = self.normalizer.normalize(raw)
        score = score_record(result.record, result.ledger)

        metrics.invoice_records_total.labels(status="normalized").inc()
        metrics.invoice_quality_score.observe(score.overall)
        for field in result.ledger.synthetic_fields:
            metrics.invoice_synthetic_fields_total.labels(field=field).inc()

        return ProcessedRecord(index=index, result=result, score=score)

    def _failure(self, index: int, raw: Any, error: Exception) -> RecordFailure:
        metrics.invoice_records_total.labels(status="failed").inc()
        metrics.invoice_normalization_failures_total.labels(
            error_type=type(error).__name__
        ).inc()
        return RecordFailure(
            index=index,
            invoice_number=_raw_invoice_number(raw),
            error_type=type(error).__name__,
            path=getattr(error, "path", None),
            message=str(error),
        )

    def run(self, records: Sequence[Mapping[str, Any]]) -> BatchResult:
        """Process a batch of raw records.

        Args:
            records: Raw records from the extraction step

        Returns:
            BatchResult with processed records (input order), failures and the report
        """
        logger.info(
            f"Processing {len(records)} records with {self.settings.batch_max_workers} workers"
        )

        processed: list[ProcessedRecord] = []
        failures: list[RecordFailure] = []

        with ThreadPoolExecutor(max_workers=self.settings.batch_max_workers) as executor:
            futures = [
                executor.submit(self.process, index, raw) for index, raw in enumerate(records)
            ]

            for index, future in enumerate(futures):
                try:
                    processed.append(future.result())
                except NormalizationError as e:
                    logger.warning(f"Record {index} rejected: {e}")
                    failures.append(self._failure(index, records[index], e))
                except Exception as e:
                    logger.exception(f"Record {index} failed with unexpected error: {e}")
                    failures.append(self._failure(index, records[index], e))

        report = aggregate([p.score for p in processed], top_n=self.settings.summary_top_n)

        logger.info(
            f"Batch complete: {len(processed)} normalized, {len(failures)} failed, "
            f"average score {report.average_quality_score}"
        )
        return BatchResult(processed=processed, failures=failures, report=report)


def load_records(path: Path) -> list[dict[str, Any]]:
    """Load raw records from a JSON file.

    Accepts a list of records or an object with a "records" list.

    Raises:
        InvalidInputShape: If the file does not hold a list of records
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("records")
    if not isinstance(data, list):
        raise InvalidInputShape("records", "sequence")
    return data


def main(argv: Sequence[str] | None = None) -> int:
    """Normalize and score records from a JSON file and print the batch result.

    Returns 0 when every record was processed, 1 when some records failed and
    2 when the input file cannot be read as a list of records.
    """
    parser = argparse.ArgumentParser(description="Normalize and score invoice records")
    parser.add_argument("input", type=Path, help="JSON file with raw invoice records")
    parser.add_argument("--workers", type=int, default=None, help="Override worker count")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.workers is not None:
        settings = settings.model_copy(update={"batch_max_workers": max(1, args.workers)})

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        records = load_records(args.input)
    except (OSError, ValueError, InvalidInputShape) as e:
        logger.error(f"Cannot read records from {args.input}: {e}")
        return 2

    result = BatchRunner(settings).run(records)

    output = {
        "report": result.report.model_dump(mode="json", by_alias=True),
        "failures": [f.model_dump(mode="json", by_alias=True) for f in result.failures],
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))

    return 1 if result.failures else 0


if __name__ == "__main__":
    sys.exit(main())
