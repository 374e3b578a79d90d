"""Invoice record models shared by normalization and scoring.

Python attributes are snake_case; each field is aliased to the camelCase
name produced by the extraction step, which is also the name used in
ledger paths and serialized output (``issueDate``, ``buyerReference``...).
"""

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    """Base model: camelCase aliases, accepts either spelling, ignores unknown keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Header(RecordModel):
    """Invoice header section."""

    number: str | None = Field(None, description="Invoice number")
    issue_date: date | None = Field(None, description="Date invoice was issued")
    due_date: date | None = Field(None, description="Payment due date, absent for paid/credit")
    type_code: str | None = Field(None, description="Invoice type code (UNCL 1001)")
    currency: str | None = Field(None, description="Currency code (ISO 4217)")
    notes: str | None = Field(None, description="Free-text notes")
    buyer_reference: str | None = Field(None, description="Buyer reference or PO number")


class Party(RecordModel):
    """Seller or buyer entity."""

    name: str | None = Field(None, description="Legal name")
    trading_name: str | None = Field(None, description="Trading name if different")

    # Postal address
    address: list[str] | None = Field(None, description="Street address lines")
    city: str | None = None
    postal_code: str | None = None
    country: str | None = Field(None, description="Two-letter country code")

    # Identifiers
    vat_number: str | None = None
    company_id: str | None = None
    company_id_scheme: str | None = Field(None, description="ISO 6523 scheme of company_id")
    electronic_address: str | None = Field(None, description="E-invoicing routing address")
    electronic_address_scheme: str | None = Field(
        None, description="ISO 6523 scheme of electronic_address"
    )

    # Contact
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None

    @field_validator("address", mode="before")
    @classmethod
    def _address_lines(cls, value: Any) -> Any:
        """Accept a single street string as one address line."""
        if isinstance(value, str):
            return [value] if value.strip() else None
        return value


class LineItem(RecordModel):
    """One invoice line."""

    id: int | str | None = Field(None, description="Line identifier, unique within the record")
    name: str | None = None
    description: str | None = None
    quantity: Decimal | None = None
    unit_code: str | None = Field(None, description="UN/ECE Rec 20 unit code")
    price: Decimal | None = Field(None, description="Unit price excluding VAT")
    price_quantity: Decimal | None = Field(None, description="Quantity the price applies to")
    vat_rate: Decimal | None = Field(None, ge=0, description="VAT rate in percent")
    vat_category: str | None = Field(None, description="VAT category code (S, Z, E, AE)")
    net_amount: Decimal | None = None


class Totals(RecordModel):
    """Document level monetary totals."""

    line_extension: Decimal | None = None
    tax_exclusive: Decimal | None = None
    tax_amount: Decimal | None = None
    tax_inclusive: Decimal | None = None
    payable_amount: Decimal | None = None


class TaxBreakdownEntry(RecordModel):
    """VAT subtotal for one rate/category."""

    rate: Decimal
    category: str | None = None
    taxable_amount: Decimal
    tax_amount: Decimal


class Payment(RecordModel):
    """Payment instructions."""

    payment_means_code: str | None = Field(None, description="UNCL 4461 payment means code")
    iban: str | None = None
    bic: str | None = None
    account_name: str | None = None
    payment_terms: str | None = None
    payment_reference: str | None = None


class InvoiceRecord(RecordModel):
    """One invoice's structured data, post-extraction."""

    header: Header = Field(default_factory=Header)
    seller: Party = Field(default_factory=Party)
    buyer: Party = Field(default_factory=Party)
    lines: list[LineItem] = Field(default_factory=list)
    totals: Totals = Field(default_factory=Totals)
    tax_breakdown: list[TaxBreakdownEntry] = Field(default_factory=list)
    payment: Payment | None = None
