"""
Spreadsheet parsing with openpyxl.

One workbook layout serves every request:

- "Настройки": organization credentials as key/value pairs in A2:B12
- "Реестр начислений": one payer per row from row 7 (columns A-E, amount in H)
- "emails": full name / address pairs from row 2

Workbooks are opened read-only with cached formula values and closed
before returning.
"""

from __future__ import annotations

import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from ..errors import ErrorKind, ParseError
from ..logging import get_logger
from ..models import Beneficiary, OrganizationProfile

logger = get_logger(__name__)

SETTINGS_SHEET = 'Настройки'
PAYERS_SHEET = 'Реестр начислений'
EMAILS_SHEET = 'emails'

SETTINGS_ROW_START = 2
SETTINGS_ROW_END = 12
PAYERS_ROW_START = 7
EMAILS_ROW_START = 2

# Column H
AMOUNT_COLUMN = 7

# Settings key -> OrganizationProfile field
ORGANIZATION_KEYS = {
    'Наименование организации': 'name',
    'Расчетный счет': 'settlement_account',
    'Наименование банка': 'bank_name',
    'БИК': 'bic',
    'Корреспондентский счет': 'correspondent_account',
    'ИНН': 'payee_inn',
    'КПП': 'kpp',
    'Дополнительные параметры ДШК': 'extra_params',
}


def cell_text(value: Any) -> str:
    """Render a cell value the way it reads in the sheet."""
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _row_texts(row: tuple[Any, ...], width: int) -> list[str]:
    texts = [cell_text(v) for v in row[:width]]
    return texts + [''] * (width - len(texts))


class SpreadsheetParser:
    """Parses the payers workbook and the e-mail mapping workbook."""

    @contextmanager
    def _open_sheet(self, path: Path, sheet_name: str) -> Iterator[Worksheet]:
        try:
            workbook = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
            raise ParseError(
                'invalid or corrupted spreadsheet',
                context={'path': str(path), 'error': str(e)},
            ) from e
        except OSError as e:
            raise ParseError(
                f"failed to open spreadsheet: {e}",
                context={'path': str(path)},
                kind=ErrorKind.SYSTEM,
            ) from e

        try:
            if sheet_name not in workbook.sheetnames:
                logger.warning('parsing.sheet_missing', sheet=sheet_name, path=str(path))
                raise ParseError(
                    f"sheet '{sheet_name}' not found in file",
                    context={'sheet': sheet_name, 'path': str(path)},
                )
            yield workbook[sheet_name]
        finally:
            workbook.close()

    def parse_organization(self, path: Path) -> OrganizationProfile:
        """
        Read organization credentials from the settings sheet.

        Raises:
            ParseError: If the sheet or any required parameter is missing
        """
        params: dict[str, str] = {}
        with self._open_sheet(path, SETTINGS_SHEET) as sheet:
            for row in sheet.iter_rows(
                min_row=SETTINGS_ROW_START, max_row=SETTINGS_ROW_END, values_only=True
            ):
                key, value = _row_texts(row, 2)
                if key and value:
                    params[key] = value

        missing = [key for key in ORGANIZATION_KEYS if key not in params]
        if missing:
            raise ParseError(
                f"missing parameters in sheet '{SETTINGS_SHEET}': {', '.join(missing)}",
                context={'sheet': SETTINGS_SHEET, 'missing': missing},
            )

        return OrganizationProfile(
            **{field: params[key] for key, field in ORGANIZATION_KEYS.items()}
        )

    def parse_beneficiaries(self, path: Path) -> list[Beneficiary]:
        """Read payer rows; fully blank rows are skipped."""
        beneficiaries: list[Beneficiary] = []
        with self._open_sheet(path, PAYERS_SHEET) as sheet:
            for row in sheet.iter_rows(min_row=PAYERS_ROW_START, values_only=True):
                if not any(cell_text(v) for v in row):
                    continue
                cells = _row_texts(row, AMOUNT_COLUMN + 1)
                beneficiaries.append(
                    Beneficiary(
                        personal_account=cells[0],
                        full_name=cells[1],
                        purpose=cells[2],
                        budget_code=cells[3],
                        oktmo=cells[4],
                        amount=cells[AMOUNT_COLUMN],
                    )
                )

        logger.info('parsing.beneficiaries_parsed', count=len(beneficiaries))
        return beneficiaries

    def parse_recipient_mapping(self, path: Path) -> dict[str, str]:
        """
        Read full name -> address pairs from the emails sheet.

        Raises:
            ParseError: If the sheet is missing or some rows have only one
                of the two cells filled (row numbers listed in context)
        """
        mapping: dict[str, str] = {}
        incomplete: list[int] = []
        with self._open_sheet(path, EMAILS_SHEET) as sheet:
            for row_number, row in enumerate(
                sheet.iter_rows(min_row=EMAILS_ROW_START, values_only=True),
                start=EMAILS_ROW_START,
            ):
                name, address = _row_texts(row, 2)
                if not name and not address:
                    continue
                if not name or not address:
                    incomplete.append(row_number)
                    continue
                mapping[name] = address

        if incomplete:
            raise ParseError(
                f"missing full name or email in rows: {', '.join(map(str, incomplete))}",
                context={'sheet': EMAILS_SHEET, 'rows': incomplete},
            )

        logger.info('parsing.mapping_parsed', count=len(mapping))
        return mapping
