"""Spreadsheet parsers for payers, organization settings and e-mail mappings."""

from .spreadsheet import (
    EMAILS_SHEET,
    PAYERS_SHEET,
    SETTINGS_SHEET,
    SpreadsheetParser,
)

__all__ = [
    'SpreadsheetParser',
    'SETTINGS_SHEET',
    'PAYERS_SHEET',
    'EMAILS_SHEET',
]
