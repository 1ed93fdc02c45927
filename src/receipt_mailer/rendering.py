"""
PDF receipt rendering with PyMuPDF.

The blank receipt is a two-part form (payer copy on top, bank copy below)
with the same fields in both parts. Organization credentials are stamped
once per request into a template; each receipt then copies that template
and stamps the payer credentials, the amount and the payment QR code.

Coordinates are PDF points from the top-left corner of the first page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import fitz

from .errors import RenderError
from .logging import get_logger
from .models import Beneficiary, OrganizationProfile

logger = get_logger(__name__)

TEMPLATE_FILE_NAME = 'receipt_template.pdf'

# Noto Sans from pymupdf-fonts; covers Cyrillic, unlike the Base-14 fonts
DEFAULT_FONT = 'notos'
FONT_NAME = 'receipt'


@dataclass(frozen=True)
class Margin:
    top: float = 0
    right: float = 0
    bottom: float = 0
    left: float = 0


@dataclass(frozen=True)
class Frame:
    """A field on the receipt; text goes inside the margins."""

    x: float
    y: float
    w: float
    h: float
    margin: Margin = field(default_factory=Margin)

    def inner_rect(self) -> fitz.Rect:
        return fitz.Rect(
            self.x + self.margin.left,
            self.y + self.margin.top,
            self.x + self.w - self.margin.right,
            self.y + self.h - self.margin.bottom,
        )


# All fields sit in one column of the main frame
MAIN_FRAME = Frame(x=161, y=14, w=381, h=383)

_CREDENTIALS_MARGIN = Margin(top=14, right=4, bottom=2, left=4)
_AMOUNT_MARGIN = Margin(top=10, right=104, bottom=2, left=104)
_ORGANIZATION_MARGIN = Margin(top=4, right=4, bottom=2, left=4)

# (top part, bottom part) of every duplicated field
ORGANIZATION_FRAMES = (
    Frame(MAIN_FRAME.x, MAIN_FRAME.y + 10, MAIN_FRAME.w, 78, _ORGANIZATION_MARGIN),
    Frame(MAIN_FRAME.x, MAIN_FRAME.y + 201, MAIN_FRAME.w, 78, _ORGANIZATION_MARGIN),
)
PAYER_FRAMES = (
    Frame(MAIN_FRAME.x, MAIN_FRAME.y + 90, MAIN_FRAME.w, 36, _CREDENTIALS_MARGIN),
    Frame(MAIN_FRAME.x, MAIN_FRAME.y + 281, MAIN_FRAME.w, 36, _CREDENTIALS_MARGIN),
)
AMOUNT_FRAMES = (
    Frame(MAIN_FRAME.x, MAIN_FRAME.y + 125, MAIN_FRAME.w, 26, _AMOUNT_MARGIN),
    Frame(MAIN_FRAME.x, MAIN_FRAME.y + 316, MAIN_FRAME.w, 26, _AMOUNT_MARGIN),
)
QR_CODE_FRAME = Frame(x=35, y=270, w=120, h=120)


def organization_text(profile: OrganizationProfile) -> str:
    return '\n'.join(
        [
            profile.name,
            f"ИНН {profile.payee_inn}  КПП {profile.kpp}",
            f"р/с {profile.settlement_account}",
            f"{profile.bank_name}  БИК {profile.bic}",
            f"к/с {profile.correspondent_account}",
        ]
    )


def payer_text(beneficiary: Beneficiary) -> str:
    parts = [beneficiary.full_name]
    if beneficiary.personal_account:
        parts.append(f"л/с {beneficiary.personal_account}")
    if beneficiary.purpose:
        parts.append(beneficiary.purpose)
    return ', '.join(parts)


class PdfReceiptRenderer:
    """ArtifactRenderer that stamps receipts onto a blank PDF form."""

    def __init__(
        self,
        template_path: str | Path,
        font_path: str | Path | None = None,
        font_size: float = 8,
    ):
        self.template_path = Path(template_path)
        self.font_path = Path(font_path) if font_path else None
        self.font_size = font_size
        self._font_buffer: bytes | None = None

    def font_buffer(self) -> bytes:
        """Bytes of the configured font file, or of the bundled default font."""
        if self._font_buffer is None:
            if self.font_path is None:
                self._font_buffer = fitz.Font(DEFAULT_FONT).buffer
            else:
                try:
                    self._font_buffer = self.font_path.read_bytes()
                except OSError as e:
                    raise RenderError(
                        'Receipt font could not be read',
                        context={'font_path': str(self.font_path), 'error': str(e)},
                    ) from e
        return self._font_buffer

    def prepare_template(self, profile: OrganizationProfile, output_dir: Path) -> Path:
        """Stamp organization credentials into a copy of the blank form."""
        if not self.template_path.is_file():
            raise RenderError(
                'Blank receipt template not found',
                context={'template_path': str(self.template_path)},
            )
        target = output_dir / TEMPLATE_FILE_NAME
        font = self.font_buffer()
        with fitz.open(str(self.template_path)) as doc:
            page = doc[0]
            page.insert_font(fontname=FONT_NAME, fontbuffer=font)
            text = organization_text(profile)
            for frame in ORGANIZATION_FRAMES:
                self._insert_text(page, frame, text)
            doc.save(str(target))
        logger.info('rendering.template_prepared', path=str(target))
        return target

    def render(
        self,
        template: Path,
        profile: OrganizationProfile,
        beneficiary: Beneficiary,
        payment_code: bytes,
        output_dir: Path,
    ) -> Path:
        """Render one receipt to ``<output_dir>/<Full_Name>.pdf``."""
        target = output_dir / f"{beneficiary.file_stem}.pdf"
        font = self.font_buffer()
        with fitz.open(str(template)) as doc:
            page = doc[0]
            page.insert_font(fontname=FONT_NAME, fontbuffer=font)
            text = payer_text(beneficiary)
            for frame in PAYER_FRAMES:
                self._insert_text(page, frame, text)
            for frame in AMOUNT_FRAMES:
                self._insert_text(page, frame, beneficiary.normalized_amount, align=fitz.TEXT_ALIGN_CENTER)
            page.insert_image(QR_CODE_FRAME.inner_rect(), stream=payment_code)
            doc.save(str(target))
        return target

    def _insert_text(
        self,
        page: fitz.Page,
        frame: Frame,
        text: str,
        align: int = fitz.TEXT_ALIGN_LEFT,
    ) -> None:
        overflow = page.insert_textbox(
            frame.inner_rect(),
            text,
            fontsize=self.font_size,
            fontname=FONT_NAME,
            align=align,
        )
        if overflow < 0:
            logger.warning('rendering.text_overflow', frame=str(frame), overflow=overflow)
