"""Batch level aggregation of record scores.

Aggregation needs the complete set of per-record scores; it does no
incremental accumulation and must only run once every record is scored.
"""

from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime
from statistics import mean

from pydantic import Field

from services.scoring.engine import RecordScore, ScoreModel

TOP_MISSING_FIELDS = 5


class MissingFieldCount(ScoreModel):
    """How many records were missing a field before normalization."""

    path: str
    count: int
    percentage: float


class BatchReport(ScoreModel):
    """Aggregate statistics over a batch of scored records.

    Attributes:
        total_invoices: Number of scored records
        average_quality_score: Mean overall score, one decimal
        invoices_with_synthetic_data: Records carrying at least one synthetic field
        synthetic_data_percentage: Share of such records, one decimal
        total_synthetic_fields: Synthetic fields over all records
        average_synthetic_fields_per_invoice: Mean synthetic fields per record, two decimals
        missing_field_counts: Full frequency table, most frequent first
        top_missing_fields: Head of the frequency table for summaries
        invoices: Per-record scores
    """

    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    total_invoices: int
    average_quality_score: float
    invoices_with_synthetic_data: int
    synthetic_data_percentage: float
    total_synthetic_fields: int
    average_synthetic_fields_per_invoice: float
    missing_field_counts: list[MissingFieldCount]
    top_missing_fields: list[MissingFieldCount]
    invoices: list[RecordScore]


def count_missing_fields(scores: Sequence[RecordScore]) -> list[MissingFieldCount]:
    """Frequency of missing-field paths, count descending, ties in first-seen order."""
    counts: Counter[str] = Counter()
    for score in scores:
        counts.update(dict.fromkeys(score.missing_fields, 1))

    total = len(scores)
    # sorted() is stable and Counter keeps insertion order, so ties stay first-seen
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [
        MissingFieldCount(path=path, count=count, percentage=round(count / total * 100, 1))
        for path, count in ranked
    ]


def aggregate(scores: Sequence[RecordScore], top_n: int = TOP_MISSING_FIELDS) -> BatchReport:
    """Aggregate per-record scores into batch statistics.

    Args:
        scores: Scores of every successfully normalized record in the batch
        top_n: Length of the summary list of most frequent missing fields

    Returns:
        BatchReport (all averages are 0.0 for an empty batch)
    """
    total = len(scores)
    with_synthetic = sum(1 for score in scores if score.synthetic_fields)
    synthetic_fields = sum(len(score.synthetic_fields) for score in scores)
    missing_counts = count_missing_fields(scores)

    return BatchReport(
        total_invoices=total,
        average_quality_score=round(mean(s.overall for s in scores), 1) if total else 0.0,
        invoices_with_synthetic_data=with_synthetic,
        synthetic_data_percentage=round(with_synthetic / total * 100, 1) if total else 0.0,
        total_synthetic_fields=synthetic_fields,
        average_synthetic_fields_per_invoice=round(synthetic_fields / total, 2) if total else 0.0,
        missing_field_counts=missing_counts,
        top_missing_fields=missing_counts[:top_n],
        invoices=list(scores),
    )
