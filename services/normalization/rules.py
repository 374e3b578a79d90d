"""Fallback rules that complete an invoice record for Peppol validation.

Each rule is a pure function taking and returning a ``(record, ledger)``
pair. Rules never mutate their arguments; when a rule changes something it
works on a deep copy. ``FALLBACK_RULES`` fixes the order in which the
normalizer applies them; later rules read values written by earlier ones.

Placeholder values are chosen to be syntactically valid for the validator
while being impossible to route or pay to:
- email placeholders use the RFC 6761 reserved ``.invalid`` TLD
- the IBAN placeholder has check digits ``00``, which never pass mod-97
"""

import logging
import re
from collections.abc import Callable, Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from services.normalization.ledger import ProvenanceLedger
from services.normalization.schema import InvoiceRecord, LineItem, Party, Payment, TaxBreakdownEntry

logger = logging.getLogger(__name__)

Rule = Callable[[InvoiceRecord, ProvenanceLedger], tuple[InvoiceRecord, ProvenanceLedger]]

# ISO 6523 scheme codes
EMAIL_SCHEME = "9957"
GLN_SCHEME = "0088"
COMPANY_REGISTRY_SCHEME = "0183"  # NL chamber of commerce (KVK)

# UNCL 4461
CREDIT_TRANSFER_MEANS_CODE = "30"

PLACEHOLDER_STREET = "Teststraat 1"
PLACEHOLDER_CITY = "Amsterdam"
PLACEHOLDER_POSTAL_CODE = "1000AA"
PLACEHOLDER_ELECTRONIC_ADDRESS = "noreply@buyer.invalid"
PLACEHOLDER_IBAN = "NL00INGB0000000000"
PLACEHOLDER_BIC = "INGBNL2A"
PLACEHOLDER_ACCOUNT_NAME = "Payment Completed"

TOTALS_TOLERANCE = Decimal("0.02")
CENT = Decimal("0.01")

LEGAL_ENTITY_SUFFIXES = (
    "BV",
    "B.V.",
    "NV",
    "N.V.",
    "VOF",
    "V.O.F.",
    "GmbH",
    "Ltd",
    "LLC",
    "Inc",
    "Corp",
    "SA",
    "SARL",
    "SRL",
    "AG",
)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def has_value(value: Any) -> bool:
    """Check whether a field carries a value.

    None, blank strings and empty collections are absent. Numeric zero is present.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return any(has_value(item) for item in value)
    if isinstance(value, tuple | set | dict):
        return bool(value)
    return True


def money(value: Decimal) -> Decimal:
    """Round an amount to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_net(line: LineItem) -> Decimal:
    """Unrounded quantity x price for a line, zero when either is unknown."""
    if line.quantity is None or line.price is None:
        return Decimal("0")
    return line.quantity * line.price


def is_terminal(record: InvoiceRecord) -> bool:
    """A record without due date is paid or a credit note."""
    return record.header.due_date is None


def is_business_party(party: Party) -> bool:
    """Classify a party as business (B2B) rather than consumer (B2C).

    Advisory only; no fallback rule depends on it.
    """
    if has_value(party.vat_number) or has_value(party.company_id):
        return True

    name = (party.name or "").lower()
    return any(suffix.lower() in name for suffix in LEGAL_ENTITY_SUFFIXES)


def complete_buyer_address(
    record: InvoiceRecord, ledger: ProvenanceLedger
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Inject a placeholder postal address for a buyer without one."""
    if has_value(record.buyer.address):
        return record, ledger

    record = record.model_copy(deep=True)
    buyer = record.buyer
    buyer.address = [PLACEHOLDER_STREET]
    if not has_value(buyer.city):
        buyer.city = PLACEHOLDER_CITY
    if not has_value(buyer.postal_code):
        buyer.postal_code = PLACEHOLDER_POSTAL_CODE

    logger.info(f"Invoice {record.header.number}: injected placeholder buyer address")
    ledger = ledger.record_substitution(
        "buyer.address", "Buyer address missing - using legally compliant placeholder"
    )
    return record, ledger


def _electronic_address_scheme(party: Party) -> str | None:
    """Scheme a present electronic address should carry, or None to keep the current one."""
    if EMAIL_PATTERN.match((party.electronic_address or "").strip()):
        return EMAIL_SCHEME
    if not has_value(party.electronic_address_scheme):
        return GLN_SCHEME
    return None


def complete_electronic_addresses(
    record: InvoiceRecord, ledger: ProvenanceLedger
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Inject the buyer's routing address when absent and repair address schemes."""
    record = record.model_copy(deep=True)

    buyer = record.buyer
    if not has_value(buyer.electronic_address):
        buyer.electronic_address = PLACEHOLDER_ELECTRONIC_ADDRESS
        buyer.electronic_address_scheme = EMAIL_SCHEME
        logger.info(
            f"Invoice {record.header.number}: injected placeholder buyer electronic address"
        )
        ledger = ledger.record_substitution(
            "buyer.electronicAddress",
            "Buyer electronic address missing - using RFC 6761 compliant placeholder",
        )

    for role, party in (("buyer", buyer), ("seller", record.seller)):
        if not has_value(party.electronic_address):
            continue
        scheme = _electronic_address_scheme(party)
        if scheme is not None and scheme != party.electronic_address_scheme:
            logger.debug(f"{role} electronic address scheme set to {scheme}")
            party.electronic_address_scheme = scheme

    return record, ledger


def complete_company_id_schemes(
    record: InvoiceRecord, ledger: ProvenanceLedger
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Default the scheme of a supplied company identifier."""
    record = record.model_copy(deep=True)

    for role, party in (("Seller", record.seller), ("Buyer", record.buyer)):
        if has_value(party.company_id) and not has_value(party.company_id_scheme):
            party.company_id_scheme = COMPANY_REGISTRY_SCHEME
            logger.debug(f"{role} company ID scheme set to {COMPANY_REGISTRY_SCHEME}")
            ledger = ledger.warn(
                f"{role} company ID scheme auto-set to {COMPANY_REGISTRY_SCHEME} (NL KVK)"
            )

    return record, ledger


def complete_buyer_reference(
    record: InvoiceRecord, ledger: ProvenanceLedger
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Use the invoice number as buyer reference when none was supplied."""
    if has_value(record.header.buyer_reference):
        return record, ledger

    record = record.model_copy(deep=True)
    record.header.buyer_reference = record.header.number

    logger.info(f"Invoice {record.header.number}: buyer reference set to invoice number")
    ledger = ledger.record_substitution(
        "header.buyerReference", "Buyer reference missing - using invoice number as fallback"
    )
    return record, ledger


def complete_payment(
    record: InvoiceRecord, ledger: ProvenanceLedger
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Inject non-routable payment details for terminal invoices and repair means codes."""
    payment = record.payment
    has_iban = payment is not None and has_value(payment.iban)

    if is_terminal(record) and not has_iban:
        record = record.model_copy(deep=True)
        payment = record.payment or Payment()
        payment.iban = PLACEHOLDER_IBAN
        if not has_value(payment.bic):
            payment.bic = PLACEHOLDER_BIC
        if not has_value(payment.payment_means_code):
            payment.payment_means_code = CREDIT_TRANSFER_MEANS_CODE
        if not has_value(payment.account_name):
            payment.account_name = PLACEHOLDER_ACCOUNT_NAME
        record.payment = payment

        logger.info(f"Invoice {record.header.number}: injected placeholder payment details")
        ledger = ledger.record_substitution(
            "payment", "Payment info missing (paid/credit invoice) - using compliant placeholder"
        )
        return record, ledger

    if has_iban and not has_value(payment.payment_means_code):
        record = record.model_copy(deep=True)
        record.payment.payment_means_code = CREDIT_TRANSFER_MEANS_CODE
        logger.debug(f"Payment means code set to {CREDIT_TRANSFER_MEANS_CODE}")
        ledger = ledger.warn(
            f"Payment means code auto-set to {CREDIT_TRANSFER_MEANS_CODE} (credit transfer)"
        )

    return record, ledger


def describe_mismatch(label: str, calculated: Decimal, stated: Decimal) -> str | None:
    """Warning text when a stated amount is off by more than the tolerance, else None.

    ``calculated`` is compared unrounded; it is shown rounded to cents.
    """
    difference = abs(calculated - stated)
    if difference <= TOTALS_TOLERANCE:
        return None
    return (
        f"{label}: calculated {money(calculated):.2f} vs stated {stated:.2f} "
        f"(diff: {money(difference):.2f})"
    )


def derive_tax_breakdown(lines: Iterable[LineItem]) -> list[TaxBreakdownEntry]:
    """One VAT subtotal per distinct rate/category, in first-seen line order."""
    bases: dict[tuple[Decimal, str | None], Decimal] = {}
    for line in lines:
        key = (line.vat_rate or Decimal("0"), line.vat_category)
        bases[key] = bases.get(key, Decimal("0")) + line_net(line)

    return [
        TaxBreakdownEntry(
            rate=rate,
            category=category,
            taxable_amount=money(base),
            tax_amount=money(base * rate / 100),
        )
        for (rate, category), base in bases.items()
    ]


def reconcile_totals(
    record: InvoiceRecord, ledger: ProvenanceLedger
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Derive absent totals from the lines and flag stated totals that disagree.

    A disagreement beyond the rounding tolerance is a warning, never an error.
    Stated line extension, tax and payable amounts are kept as extracted. The
    tax exclusive total must stay within tolerance of the line sum and the tax
    inclusive total must equal tax exclusive plus tax, so stated values that
    break either are replaced by the derived ones.
    """
    record = record.model_copy(deep=True)
    totals = record.totals

    line_sum = sum((line_net(line) for line in record.lines), Decimal("0"))
    calculated_net = money(line_sum)
    calculated_tax = money(
        sum(
            (line_net(line) * (line.vat_rate or Decimal("0")) / 100 for line in record.lines),
            Decimal("0"),
        )
    )

    warnings: list[str | None] = []

    if totals.line_extension is None:
        totals.line_extension = calculated_net
    else:
        warnings.append(describe_mismatch("Total mismatch", line_sum, totals.line_extension))

    if totals.tax_exclusive is not None:
        mismatch = describe_mismatch(
            "Tax exclusive total mismatch", line_sum, totals.tax_exclusive
        )
        if mismatch is not None:
            warnings.append(f"{mismatch} - using calculated value")
            totals.tax_exclusive = None
    if totals.tax_exclusive is None:
        totals.tax_exclusive = calculated_net

    if totals.tax_amount is None:
        totals.tax_amount = calculated_tax

    gross = totals.tax_exclusive + totals.tax_amount
    if totals.tax_inclusive is not None:
        mismatch = describe_mismatch("Tax inclusive total mismatch", gross, totals.tax_inclusive)
        if mismatch is not None:
            warnings.append(f"{mismatch} - using calculated value")
    totals.tax_inclusive = gross

    if totals.payable_amount is None:
        totals.payable_amount = gross

    if not record.tax_breakdown:
        record.tax_breakdown = derive_tax_breakdown(record.lines)

    for warning in warnings:
        if warning is not None:
            logger.warning(f"Invoice {record.header.number}: {warning}")
            ledger = ledger.warn(warning)

    return record, ledger


FALLBACK_RULES: tuple[Rule, ...] = (
    complete_buyer_address,
    complete_electronic_addresses,
    complete_company_id_schemes,
    complete_buyer_reference,
    complete_payment,
    reconcile_totals,
)


def apply_rules(
    record: InvoiceRecord,
    ledger: ProvenanceLedger,
    rules: Iterable[Rule] = FALLBACK_RULES,
) -> tuple[InvoiceRecord, ProvenanceLedger]:
    """Run rules in order, threading the record and ledger through each."""
    for rule in rules:
        record, ledger = rule(record, ledger)
    return record, ledger
