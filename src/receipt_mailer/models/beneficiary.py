"""
Beneficiary and organization models parsed from the payers spreadsheet.

Both are frozen: one request parses them once and every receipt in that
request reads the same instances.
"""

import re

from pydantic import BaseModel, ConfigDict, Field

_UNSAFE_FILE_CHARS = re.compile(r'[^\w.-]+')


def normalize_amount(amount: str) -> str:
    """
    Normalize a free-text amount to two decimal places.

    Both ',' and '.' are accepted as the decimal separator.
    Examples: '1200,5' -> '1200.50', '490.99' -> '490.99', '300' -> '300.00'.
    """
    value = amount.strip().replace(',', '.', 1)
    if not value:
        return ''
    if '.' not in value:
        return value + '.00'
    whole, _, fraction = value.rpartition('.')
    if len(fraction) == 1:
        fraction += '0'
    return f"{whole}.{fraction}"


class Beneficiary(BaseModel):
    """A single payer row: who pays, for what and how much."""

    model_config = ConfigDict(frozen=True)

    full_name: str = Field(..., description='Full name, used as the mapping key')
    personal_account: str = Field(default='', description='Personal account number')
    purpose: str = Field(default='', description='Payment purpose')
    budget_code: str = Field(default='', description='Budget classification code (KBK)')
    oktmo: str = Field(default='', description='Municipal territory code (OKTMO)')
    amount: str = Field(default='', description='Amount as written in the source file')

    @property
    def normalized_amount(self) -> str:
        return normalize_amount(self.amount)

    @property
    def file_stem(self) -> str:
        """File-system friendly name used for the receipt and QR files."""
        stem = _UNSAFE_FILE_CHARS.sub('_', self.full_name.strip()).strip('._')
        return stem or 'receipt'


class OrganizationProfile(BaseModel):
    """Payee banking credentials stamped on every receipt of a request."""

    model_config = ConfigDict(frozen=True)

    name: str
    settlement_account: str
    bank_name: str
    bic: str
    correspondent_account: str
    payee_inn: str
    kpp: str
    extra_params: str = Field(
        default='', description='Trailing payment-code parameters, not part of the receipt text'
    )
