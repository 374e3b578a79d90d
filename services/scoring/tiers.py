"""Fixed field tiers and weights for completeness scoring.

Field names are enumerated so a misspelling fails on import or in the
tier/schema consistency test instead of silently scoring as absent. Enum
values are the serialized (camelCase) field names of the record models.
"""

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType


class Section(StrEnum):
    """Independently scored record sections."""

    HEADER = "header"
    SELLER = "seller"
    BUYER = "buyer"
    LINES = "lines"
    PAYMENT = "payment"


class HeaderField(StrEnum):
    NUMBER = "number"
    ISSUE_DATE = "issueDate"
    CURRENCY = "currency"
    DUE_DATE = "dueDate"
    NOTES = "notes"


class PartyField(StrEnum):
    NAME = "name"
    ADDRESS = "address"
    CITY = "city"
    COUNTRY = "country"
    ELECTRONIC_ADDRESS = "electronicAddress"
    POSTAL_CODE = "postalCode"
    VAT_NUMBER = "vatNumber"
    COMPANY_ID = "companyId"
    CONTACT_NAME = "contactName"
    CONTACT_EMAIL = "contactEmail"
    CONTACT_PHONE = "contactPhone"


class PaymentField(StrEnum):
    IBAN = "iban"
    BIC = "bic"
    ACCOUNT_NAME = "accountName"
    PAYMENT_REFERENCE = "paymentReference"
    PAYMENT_TERMS = "paymentTerms"


# Share of a section's 100 points per tier
CRITICAL_WEIGHT = 60.0
IMPORTANT_WEIGHT = 30.0
OPTIONAL_WEIGHT = 10.0


@dataclass(frozen=True)
class SectionTiers:
    """Critical, important and optional fields of one section."""

    critical: tuple[StrEnum, ...] = ()
    important: tuple[StrEnum, ...] = ()
    optional: tuple[StrEnum, ...] = ()

    @property
    def fields(self) -> tuple[StrEnum, ...]:
        return self.critical + self.important + self.optional


HEADER_TIERS = SectionTiers(
    critical=(HeaderField.NUMBER, HeaderField.ISSUE_DATE, HeaderField.CURRENCY),
    important=(HeaderField.DUE_DATE, HeaderField.NOTES),
)

PARTY_TIERS = SectionTiers(
    critical=(
        PartyField.NAME,
        PartyField.ADDRESS,
        PartyField.CITY,
        PartyField.COUNTRY,
        PartyField.ELECTRONIC_ADDRESS,
    ),
    important=(PartyField.POSTAL_CODE, PartyField.VAT_NUMBER, PartyField.COMPANY_ID),
    optional=(PartyField.CONTACT_NAME, PartyField.CONTACT_EMAIL, PartyField.CONTACT_PHONE),
)

PAYMENT_TIERS = SectionTiers(
    important=(PaymentField.IBAN, PaymentField.BIC, PaymentField.ACCOUNT_NAME),
    optional=(PaymentField.PAYMENT_REFERENCE, PaymentField.PAYMENT_TERMS),
)

# Lines use their own heuristic and have no tier table
SECTION_TIERS = MappingProxyType(
    {
        Section.HEADER: HEADER_TIERS,
        Section.SELLER: PARTY_TIERS,
        Section.BUYER: PARTY_TIERS,
        Section.PAYMENT: PAYMENT_TIERS,
    }
)

# Buyer data is the most often incomplete and matters most for compliance
SECTION_WEIGHTS = MappingProxyType(
    {
        Section.HEADER: 0.15,
        Section.SELLER: 0.25,
        Section.BUYER: 0.30,
        Section.LINES: 0.20,
        Section.PAYMENT: 0.10,
    }
)
