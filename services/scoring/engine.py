"""Completeness scoring for normalized invoice records.

Scores each section on a 0-100 scale and combines them into a weighted
overall score. Scoring is deterministic and total: any structurally valid
record gets a score, nothing here raises.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.normalization.ledger import ProvenanceLedger
from services.normalization.rules import has_value
from services.normalization.schema import InvoiceRecord, LineItem
from services.scoring.tiers import (
    CRITICAL_WEIGHT,
    IMPORTANT_WEIGHT,
    OPTIONAL_WEIGHT,
    SECTION_TIERS,
    SECTION_WEIGHTS,
    Section,
)


class ScoreModel(BaseModel):
    """Base for score output: camelCase serialization."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SectionScore(ScoreModel):
    """Score of one section.

    Attributes:
        score: Section score (0-100), one decimal
        missing: Dotted paths of absent critical/important fields (or line hints)
        present: Present-field counts per tier, or line statistics for lines
        total_fields: Number of configured fields (criteria for lines)
    """

    score: float = Field(ge=0, le=100)
    missing: list[str] = Field(default_factory=list)
    present: dict[str, int] = Field(default_factory=dict)
    total_fields: int = 0


class RecordScore(ScoreModel):
    """Completeness score of one normalized record, with its provenance."""

    invoice_number: str | None = None
    overall: float = Field(ge=0, le=100)
    sections: dict[str, SectionScore]
    missing_fields: list[str] = Field(default_factory=list)
    synthetic_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def score_section(
    section_data: Mapping[str, Any],
    critical_fields: Sequence[str] = (),
    important_fields: Sequence[str] = (),
    optional_fields: Sequence[str] = (),
    *,
    section: str,
) -> SectionScore:
    """Score a section from its critical (60), important (30) and optional (10) fields.

    A tier without configured fields contributes nothing rather than zero;
    a section without any configured field scores 100.

    Args:
        section_data: Section values keyed by serialized field name
        critical_fields: Critical field names
        important_fields: Important field names
        optional_fields: Optional field names
        section: Section name used as prefix for missing field paths

    Returns:
        SectionScore with score, missing paths and per-tier present counts
    """
    missing: list[str] = []
    present: dict[str, int] = {}
    score = 0.0

    tiers: Iterable[tuple[str, Sequence[str], float, bool]] = (
        ("critical", critical_fields, CRITICAL_WEIGHT, True),
        ("important", important_fields, IMPORTANT_WEIGHT, True),
        ("optional", optional_fields, OPTIONAL_WEIGHT, False),
    )
    for tier, fields, weight, reported in tiers:
        count = 0
        for field in fields:
            if has_value(section_data.get(field)):
                count += 1
            elif reported:
                missing.append(f"{section}.{field}")
        present[tier] = count
        if fields:
            score += count / len(fields) * weight

    total_fields = len(critical_fields) + len(important_fields) + len(optional_fields)
    if total_fields == 0:
        score = 100.0

    return SectionScore(
        score=round(score, 1),
        missing=missing,
        present=present,
        total_fields=total_fields,
    )


def score_lines(lines: Sequence[LineItem]) -> SectionScore:
    """Score the line section with the itemization/description/pricing heuristic."""
    if not lines:
        return SectionScore(score=0.0, missing=["lines"], total_fields=1)

    described = sum(1 for line in lines if has_value(line.description))
    priced = sum(1 for line in lines if line.quantity is not None and line.price is not None)

    # More than one line suggests itemization rather than an aggregated total
    itemized = len(lines) > 1

    missing: list[str] = []
    if not itemized:
        missing.append("lines.detail")
    if described == 0:
        missing.append("lines.description")
    if priced < len(lines):
        missing.append("lines.pricing")

    score = (
        (40 if itemized else 20)
        + (30 if described > 0 else 10)
        + (30 if priced == len(lines) else 15)
    )

    return SectionScore(
        score=float(score),
        missing=missing,
        present={"lineCount": len(lines), "withDescriptions": described, "withPricing": priced},
        total_fields=3,
    )


def _section_data(model: BaseModel | None) -> dict[str, Any]:
    return model.model_dump(by_alias=True) if model is not None else {}


def score_record(record: InvoiceRecord, ledger: ProvenanceLedger | None = None) -> RecordScore:
    """Score every section of a record and combine them into the overall score.

    Args:
        record: Normalized invoice record
        ledger: Provenance ledger produced with the record

    Returns:
        RecordScore with section scores, overall score and provenance copies
    """
    ledger = ledger or ProvenanceLedger()

    section_models: dict[Section, BaseModel | None] = {
        Section.HEADER: record.header,
        Section.SELLER: record.seller,
        Section.BUYER: record.buyer,
        Section.PAYMENT: record.payment,
    }

    sections: dict[str, SectionScore] = {}
    for section in Section:
        if section is Section.LINES:
            sections[section] = score_lines(record.lines)
            continue
        tiers = SECTION_TIERS[section]
        sections[section] = score_section(
            _section_data(section_models[section]),
            tiers.critical,
            tiers.important,
            tiers.optional,
            section=section,
        )

    overall = round(
        sum(sections[section].score * weight for section, weight in SECTION_WEIGHTS.items()), 1
    )

    return RecordScore(
        invoice_number=record.header.number,
        overall=overall,
        sections={str(name): score for name, score in sections.items()},
        missing_fields=list(ledger.missing_fields),
        synthetic_fields=list(ledger.synthetic_fields),
        warnings=list(ledger.warnings),
    )
