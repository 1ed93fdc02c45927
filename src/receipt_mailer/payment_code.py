"""
Payment QR code payload and image generation.

The payload follows the ST00012 bank payment format:

    ST00012|Name=...|PersonalAcc=...|BankName=...|BIC=...|CorrespAcc=...|
    PayeeINN=...|KPP=...|PersAcc=...|CHILDFIO=...|Purpose=...|CBC=...|
    OKTMO=...|Sum=...|LASTNAME=|<extra params>

Name and purpose are upper-cased, the sum is written in minor units
(``1230.5`` -> ``123050``) and the organization's extra parameters are
appended as a bare trailing value.
"""

import io

import segno

from .models import Beneficiary, OrganizationProfile

PAYMENT_FORMAT_HEADER = 'ST00012'


def format_sum(amount: str) -> str:
    """
    Write an amount in minor units for the payment code.

    Both ',' and '.' are decimal separators: '1230' -> '123000',
    '1230.5' -> '123050', '1230,45' -> '123045'.
    """
    whole, _, fraction = amount.strip().replace(',', '.').partition('.')
    if not fraction:
        fraction = '00'
    elif len(fraction) == 1:
        fraction += '0'
    return whole + fraction


def build_payment_payload(profile: OrganizationProfile, beneficiary: Beneficiary) -> str:
    """Build the ST00012 payment string for one beneficiary."""
    fields = [
        ('Name', profile.name),
        ('PersonalAcc', profile.settlement_account),
        ('BankName', profile.bank_name),
        ('BIC', profile.bic),
        ('CorrespAcc', profile.correspondent_account),
        ('PayeeINN', profile.payee_inn),
        ('KPP', profile.kpp),
        ('PersAcc', beneficiary.personal_account),
        ('CHILDFIO', beneficiary.full_name.upper()),
        ('Purpose', beneficiary.purpose.upper()),
        ('CBC', beneficiary.budget_code),
        ('OKTMO', beneficiary.oktmo),
        ('Sum', format_sum(beneficiary.amount)),
        ('LASTNAME', ''),
    ]
    parts = [PAYMENT_FORMAT_HEADER]
    parts.extend(f"{key}={value}" for key, value in fields)
    parts.append(profile.extra_params)
    return '|'.join(parts)


class QrPaymentCodeGenerator:
    """PaymentCodeGenerator that encodes the payload as a PNG QR code."""

    def __init__(self, scale: int = 4, border: int = 0):
        self.scale = scale
        self.border = border

    def generate(self, profile: OrganizationProfile, beneficiary: Beneficiary) -> bytes:
        payload = build_payment_payload(profile, beneficiary)
        qr = segno.make(payload, error='l', micro=False)
        buffer = io.BytesIO()
        qr.save(buffer, kind='png', scale=self.scale, border=self.border)
        return buffer.getvalue()
