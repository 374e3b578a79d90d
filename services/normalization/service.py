"""Normalization of raw extracted invoice records.

Turns a raw candidate record from the extraction step into one that the
downstream UBL/Peppol validator accepts, and returns it together with a
provenance ledger describing every substitution:

1. Check the raw input shape (no silent coercion of non-numeric values)
2. Check the mandatory inputs that have no safe placeholder
3. Prepare parties and lines (type code, currency, countries, line ids,
   names, unit/VAT defaults, net amounts)
4. Apply the ordered fallback rules

Usage:
    normalizer = Normalizer(settings)
    result = normalizer.normalize(raw_record)
    result.record, result.ledger
"""

import logging
import math
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from services.normalization.errors import InvalidInputShape, MissingMandatoryField
from services.normalization.ledger import ProvenanceLedger
from services.normalization.rules import apply_rules, describe_mismatch, has_value, line_net, money
from services.normalization.schema import InvoiceRecord
from services.shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_UNIT_CODE = "H87"  # piece
COMMERCIAL_INVOICE_TYPE_CODE = "380"  # UNCL 1001
STANDARD_VAT_CATEGORY = "S"
ZERO_RATED_VAT_CATEGORY = "Z"

MAPPING_SECTIONS = ("header", "seller", "buyer", "totals", "payment")

NUMERIC_LINE_KEYS = frozenset(
    {
        "quantity",
        "price",
        "priceQuantity",
        "price_quantity",
        "vatRate",
        "vat_rate",
        "netAmount",
        "net_amount",
    }
)
NUMERIC_TOTALS_KEYS = frozenset(
    {
        "lineExtension",
        "line_extension",
        "taxExclusive",
        "tax_exclusive",
        "taxAmount",
        "tax_amount",
        "taxInclusive",
        "tax_inclusive",
        "payableAmount",
        "payable_amount",
    }
)
NUMERIC_BREAKDOWN_KEYS = frozenset(
    {"rate", "taxableAmount", "taxable_amount", "taxAmount", "tax_amount"}
)

# pydantic error type -> expected kind reported to the caller
_EXPECTED_KINDS = {
    "date_from_datetime_parsing": "date",
    "date_parsing": "date",
    "date_type": "date",
    "string_type": "string",
    "list_type": "sequence",
    "model_type": "mapping",
    "model_attributes_type": "mapping",
    "dict_type": "mapping",
    "decimal_parsing": "number",
    "decimal_type": "number",
    "greater_than_equal": "non-negative number",
}


class NormalizationResult(BaseModel):
    """Normalized record and its provenance ledger.

    Attributes:
        record: Record satisfying the mandatory-field and totals invariants
        ledger: Missing fields, synthetic fields and warnings for the record
    """

    model_config = ConfigDict(frozen=True)

    record: InvoiceRecord
    ledger: ProvenanceLedger


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, int)


def _check_numbers(section: Mapping[str, Any], keys: frozenset[str], path: str) -> None:
    for key, value in section.items():
        if key in keys and value is not None and not _is_number(value):
            raise InvalidInputShape(f"{path}.{key}", "number")


def check_input_shape(raw: Any) -> None:
    """Validate the structure of a raw record before parsing.

    Raises:
        InvalidInputShape: If a section is not a mapping, lines is not a
            sequence of mappings, or a numeric field holds a non-number
    """
    if not isinstance(raw, Mapping):
        raise InvalidInputShape("record", "mapping")

    for section in MAPPING_SECTIONS:
        value = raw.get(section)
        if value is not None and not isinstance(value, Mapping):
            raise InvalidInputShape(section, "mapping")

    if raw.get("totals") is not None:
        _check_numbers(raw["totals"], NUMERIC_TOTALS_KEYS, "totals")

    lines = raw.get("lines")
    if lines is not None:
        if isinstance(lines, str | bytes) or not isinstance(lines, Sequence):
            raise InvalidInputShape("lines", "sequence")
        for index, line in enumerate(lines):
            if not isinstance(line, Mapping):
                raise InvalidInputShape(f"lines[{index}]", "mapping")
            _check_numbers(line, NUMERIC_LINE_KEYS, f"lines[{index}]")

    breakdown = raw.get("taxBreakdown", raw.get("tax_breakdown"))
    if breakdown is not None:
        if isinstance(breakdown, str | bytes) or not isinstance(breakdown, Sequence):
            raise InvalidInputShape("taxBreakdown", "sequence")
        for index, entry in enumerate(breakdown):
            if not isinstance(entry, Mapping):
                raise InvalidInputShape(f"taxBreakdown[{index}]", "mapping")
            _check_numbers(entry, NUMERIC_BREAKDOWN_KEYS, f"taxBreakdown[{index}]")


def _format_location(location: tuple[int | str, ...]) -> str:
    path = ""
    for part in location:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "record"


def parse_record(raw: Mapping[str, Any]) -> InvoiceRecord:
    """Check and parse a raw record into an InvoiceRecord.

    Raises:
        InvalidInputShape: If the raw record cannot be parsed
    """
    check_input_shape(raw)
    # null sections are treated as absent
    sections = {key: value for key, value in raw.items() if value is not None}
    try:
        return InvoiceRecord.model_validate(sections)
    except ValidationError as e:
        error = e.errors()[0]
        path = _format_location(tuple(error["loc"]))
        raise InvalidInputShape(path, _EXPECTED_KINDS.get(error["type"], error["type"])) from e


def check_mandatory_fields(record: InvoiceRecord) -> None:
    """Ensure the inputs that have no legally safe placeholder are present.

    Raises:
        MissingMandatoryField: For the first absent mandatory field
        InvalidInputShape: If a line lacks the quantity or price totals depend on
    """
    if not has_value(record.header.number):
        raise MissingMandatoryField("header.number")
    if record.header.issue_date is None:
        raise MissingMandatoryField("header.issueDate")
    if not has_value(record.seller.name):
        raise MissingMandatoryField("seller.name")
    if not has_value(record.buyer.name):
        raise MissingMandatoryField("buyer.name")
    if not record.lines:
        raise MissingMandatoryField("lines")

    for index, line in enumerate(record.lines):
        if line.quantity is None:
            raise InvalidInputShape(f"lines[{index}].quantity", "number")
        if line.price is None:
            raise InvalidInputShape(f"lines[{index}].price", "number")


class Normalizer:
    """Completes raw invoice records and tracks their provenance."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize normalizer.

        Args:
            settings: Application settings (defaults to environment settings)
        """
        self.settings = settings or get_settings()

    def normalize(
        self,
        record: Mapping[str, Any] | InvoiceRecord,
        ledger: ProvenanceLedger | None = None,
    ) -> NormalizationResult:
        """Normalize one record.

        Passing an already-normalized record with its ledger returns an
        equal result: nothing is injected twice and no value changes.

        Args:
            record: Raw record from the extraction step, or an InvoiceRecord
            ledger: Ledger to continue (defaults to an empty ledger)

        Returns:
            NormalizationResult with the completed record and its ledger

        Raises:
            MissingMandatoryField: If a mandatory input is absent
            InvalidInputShape: If the input has the wrong structure
        """
        if isinstance(record, InvoiceRecord):
            parsed = record.model_copy(deep=True)
        else:
            parsed = parse_record(record)

        check_mandatory_fields(parsed)

        parsed, ledger = self.prepare_parties(parsed, ledger or ProvenanceLedger())
        parsed, ledger = self.prepare_lines(parsed, ledger)
        parsed, ledger = apply_rules(parsed, ledger)

        logger.debug(
            f"Normalized invoice {parsed.header.number}: "
            f"{len(ledger.synthetic_fields)} synthetic fields, {len(ledger.warnings)} warnings"
        )
        return NormalizationResult(record=parsed, ledger=ledger)

    def prepare_parties(
        self, record: InvoiceRecord, ledger: ProvenanceLedger
    ) -> tuple[InvoiceRecord, ProvenanceLedger]:
        """Fill the document type, currency and party countries when absent."""
        record = record.model_copy(deep=True)
        header = record.header

        if not has_value(header.type_code):
            header.type_code = COMMERCIAL_INVOICE_TYPE_CODE

        if not has_value(header.currency):
            header.currency = self.settings.default_currency
            ledger = ledger.warn(f"Currency missing - defaulted to {header.currency}")

        for role, party in (("Seller", record.seller), ("Buyer", record.buyer)):
            if not has_value(party.country):
                party.country = self.settings.default_country
                ledger = ledger.warn(f"{role} country missing - defaulted to {party.country}")

        return record, ledger

    def prepare_lines(
        self, record: InvoiceRecord, ledger: ProvenanceLedger
    ) -> tuple[InvoiceRecord, ProvenanceLedger]:
        """Assign line ids, fill names, code-list defaults and net amounts.

        Raises:
            InvalidInputShape: If two lines carry the same id
        """
        record = record.model_copy(deep=True)

        used_ids: set[str] = set()
        for index, line in enumerate(record.lines):
            if not has_value(line.id):
                continue
            key = str(line.id)
            if key in used_ids:
                raise InvalidInputShape(f"lines[{index}].id", "unique identifier")
            used_ids.add(key)

        next_id = 1
        for line in record.lines:
            if not has_value(line.id):
                while str(next_id) in used_ids:
                    next_id += 1
                line.id = next_id
                used_ids.add(str(next_id))

            if not has_value(line.name):
                line.name = line.description if has_value(line.description) else f"Item {line.id}"
                ledger = ledger.warn(f"Line {line.id}: name missing - using '{line.name}'")

            if line.quantity <= 0:
                ledger = ledger.warn(
                    f"Line {line.id}: non-positive quantity {line.quantity} "
                    "(credit or correction line)"
                )

            if not has_value(line.unit_code):
                line.unit_code = DEFAULT_UNIT_CODE

            if line.vat_rate is None:
                line.vat_rate = self.settings.default_vat_rate
                ledger = ledger.warn(
                    f"Line {line.id}: VAT rate missing - defaulted to {line.vat_rate}%"
                )

            if not has_value(line.vat_category):
                line.vat_category = (
                    ZERO_RATED_VAT_CATEGORY if line.vat_rate == 0 else STANDARD_VAT_CATEGORY
                )

            if line.net_amount is None:
                line.net_amount = money(line_net(line))
            else:
                warning = describe_mismatch(
                    f"Line {line.id} net amount mismatch", line_net(line), line.net_amount
                )
                if warning is not None:
                    logger.warning(f"Invoice {record.header.number}: {warning}")
                    ledger = ledger.warn(warning)

        return record, ledger


def normalize(
    record: Mapping[str, Any] | InvoiceRecord, ledger: ProvenanceLedger | None = None
) -> NormalizationResult:
    """Normalize one record with default settings."""
    return Normalizer().normalize(record, ledger)
