"""Provenance ledger for a single invoice record.

Tracks which fields were absent before normalization, which of those
received a synthetic value, and advisory warnings. The ledger is an
immutable value: every update returns a new ledger.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProvenanceLedger(BaseModel):
    """Per-record provenance.

    Attributes:
        missing_fields: Dotted paths detected absent before normalization
        synthetic_fields: Dotted paths whose value was generated by a fallback rule,
            always a subset of missing_fields
        warnings: Human-readable advisories, in the order they were raised
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    missing_fields: tuple[str, ...] = Field(default=())
    synthetic_fields: tuple[str, ...] = Field(default=())
    warnings: tuple[str, ...] = Field(default=())

    def record_missing(self, path: str) -> "ProvenanceLedger":
        """Record a field as absent on input."""
        if path in self.missing_fields:
            return self
        return self.model_copy(update={"missing_fields": (*self.missing_fields, path)})

    def record_synthetic(self, path: str) -> "ProvenanceLedger":
        """Record a field as synthetically completed.

        Raises:
            ValueError: If the field was not recorded as missing first
        """
        if path not in self.missing_fields:
            raise ValueError(f"'{path}' must be recorded as missing before it can be synthetic")
        if path in self.synthetic_fields:
            return self
        return self.model_copy(update={"synthetic_fields": (*self.synthetic_fields, path)})

    def record_substitution(self, path: str, warning: str) -> "ProvenanceLedger":
        """Record a missing field that received a placeholder, with its warning."""
        return self.record_missing(path).record_synthetic(path).warn(warning)

    def warn(self, message: str) -> "ProvenanceLedger":
        """Append a warning. An identical warning already on the ledger is not repeated."""
        if message in self.warnings:
            return self
        return self.model_copy(update={"warnings": (*self.warnings, message)})

    def is_synthetic(self, path: str) -> bool:
        return path in self.synthetic_fields
