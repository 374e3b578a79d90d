"""Unit tests for the provenance ledger.

Tests cover:
- Immutability and value semantics
- Synthetic fields only after missing fields
- Warning de-duplication
- camelCase serialization
"""

import pytest
from pydantic import ValidationError

from services.normalization.ledger import ProvenanceLedger


def test_empty_ledger() -> None:
    """A new ledger records nothing."""
    ledger = ProvenanceLedger()

    assert ledger.missing_fields == ()
    assert ledger.synthetic_fields == ()
    assert ledger.warnings == ()


def test_updates_return_new_ledger() -> None:
    """Recording never changes the original ledger."""
    ledger = ProvenanceLedger()

    updated = ledger.record_missing("buyer.address")

    assert ledger.missing_fields == ()
    assert updated.missing_fields == ("buyer.address",)


def test_ledger_is_frozen() -> None:
    """Fields cannot be reassigned."""
    ledger = ProvenanceLedger()

    with pytest.raises(ValidationError):
        ledger.warnings = ("changed",)  # type: ignore[misc]


def test_synthetic_requires_missing() -> None:
    """A field cannot be synthetic without first being missing."""
    ledger = ProvenanceLedger()

    with pytest.raises(ValueError, match="must be recorded as missing"):
        ledger.record_synthetic("payment")


def test_record_substitution() -> None:
    """Substitution records missing, synthetic and the warning."""
    ledger = ProvenanceLedger().record_substitution("payment", "Payment placeholder")

    assert ledger.missing_fields == ("payment",)
    assert ledger.synthetic_fields == ("payment",)
    assert ledger.warnings == ("Payment placeholder",)
    assert ledger.is_synthetic("payment") is True
    assert ledger.is_synthetic("buyer.address") is False


def test_duplicate_entries_are_dropped() -> None:
    """Recording the same path or warning twice keeps one entry, in first-seen order."""
    ledger = (
        ProvenanceLedger()
        .record_substitution("buyer.address", "first")
        .warn("second")
        .record_substitution("buyer.address", "first")
        .warn("second")
    )

    assert ledger.missing_fields == ("buyer.address",)
    assert ledger.synthetic_fields == ("buyer.address",)
    assert ledger.warnings == ("first", "second")


def test_serializes_with_camel_case_names() -> None:
    """Serialized ledger uses stable camelCase keys."""
    ledger = ProvenanceLedger().record_substitution("payment", "note")

    data = ledger.model_dump(mode="json", by_alias=True)

    assert data == {
        "missingFields": ["payment"],
        "syntheticFields": ["payment"],
        "warnings": ["note"],
    }
