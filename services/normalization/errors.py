"""Fatal, per-record normalization errors.

These abort normalization of a single record. A batch driver catches them
and records the failure against the record; they never abort a batch.
"""


class NormalizationError(Exception):
    """Base class for errors that make a record unusable."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path


class MissingMandatoryField(NormalizationError):
    """A field with no legally safe placeholder is absent.

    Raised for the invoice number and issue date, the seller and buyer
    names, and an empty line list.
    """

    def __init__(self, path: str) -> None:
        super().__init__(path, f"Missing required field: {path}")


class InvalidInputShape(NormalizationError):
    """The raw record does not have the expected structure or value kind."""

    def __init__(self, path: str, expected_kind: str) -> None:
        super().__init__(path, f"Invalid field: {path} (expected {expected_kind})")
        self.expected_kind = expected_kind
