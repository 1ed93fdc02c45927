"""
Tests for SpreadsheetParser against workbooks built with openpyxl.
"""

from pathlib import Path

import openpyxl
import pytest

from receipt_mailer.errors import ErrorKind, ParseError
from receipt_mailer.parsing import EMAILS_SHEET, PAYERS_SHEET, SETTINGS_SHEET, SpreadsheetParser
from receipt_mailer.parsing.spreadsheet import cell_text


SETTINGS_ROWS = [
    ('Наименование организации', 'ООО Лицей'),
    ('Расчетный счет', '40702810900000000001'),
    ('Наименование банка', 'ПАО Сбербанк'),
    ('БИК', '044525225'),
    ('Корреспондентский счет', '30101810400000000225'),
    ('ИНН', '7701234567'),
    ('КПП', '770101001'),
    ('Дополнительные параметры ДШК', 'TechCode=02'),
]


def _build_workbook(
    path: Path,
    settings=SETTINGS_ROWS,
    payers=None,
    emails=None,
    sheets=(SETTINGS_SHEET, PAYERS_SHEET),
) -> Path:
    """Write a workbook with the requested sheets and rows."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    if SETTINGS_SHEET in sheets:
        ws = wb.create_sheet(SETTINGS_SHEET)
        ws.append(('Параметр', 'Значение'))
        for row in settings:
            ws.append(row)

    if PAYERS_SHEET in sheets:
        ws = wb.create_sheet(PAYERS_SHEET)
        for _ in range(6):
            ws.append(('header',))
        for row in payers or []:
            ws.append(row)

    if EMAILS_SHEET in sheets:
        ws = wb.create_sheet(EMAILS_SHEET)
        ws.append(('ФИО', 'email'))
        for row in emails or []:
            ws.append(row)

    wb.save(path)
    return path


@pytest.fixture
def parser() -> SpreadsheetParser:
    return SpreadsheetParser()


class TestCellText:
    @pytest.mark.parametrize(
        'value, expected',
        [(None, ''), (300.0, '300'), (1200.5, '1200.5'), (' Иванов ', 'Иванов'), (42, '42')],
    )
    def test_cell_text(self, value, expected):
        assert cell_text(value) == expected


class TestOrganization:
    def test_parse_organization(self, tmp_path, parser):
        path = _build_workbook(tmp_path / 'payers.xlsx')

        profile = parser.parse_organization(path)

        assert profile.name == 'ООО Лицей'
        assert profile.bic == '044525225'
        assert profile.payee_inn == '7701234567'
        assert profile.extra_params == 'TechCode=02'

    def test_missing_parameters_listed(self, tmp_path, parser):
        rows = [r for r in SETTINGS_ROWS if r[0] not in ('БИК', 'КПП')]
        path = _build_workbook(tmp_path / 'payers.xlsx', settings=rows)

        with pytest.raises(ParseError) as exc_info:
            parser.parse_organization(path)

        assert exc_info.value.kind == ErrorKind.USER
        assert exc_info.value.context['missing'] == ['БИК', 'КПП']

    def test_missing_settings_sheet(self, tmp_path, parser):
        path = _build_workbook(tmp_path / 'payers.xlsx', sheets=(PAYERS_SHEET,))

        with pytest.raises(ParseError, match='not found') as exc_info:
            parser.parse_organization(path)

        assert exc_info.value.context['sheet'] == SETTINGS_SHEET


class TestBeneficiaries:
    def test_parse_rows_and_skip_blank(self, tmp_path, parser):
        payers = [
            ('001', 'Иванов Иван', 'Питание', '130', '45000000', None, None, '1200,5'),
            (None, None, None, None, None, None, None, None),
            (2, 'Петров Петр', 'Питание', '130', '45000000', None, None, 300.0),
        ]
        path = _build_workbook(tmp_path / 'payers.xlsx', payers=payers)

        rows = parser.parse_beneficiaries(path)

        assert [b.full_name for b in rows] == ['Иванов Иван', 'Петров Петр']
        assert rows[0].normalized_amount == '1200.50'
        assert rows[1].personal_account == '2'
        assert rows[1].amount == '300'

    def test_short_row_has_empty_amount(self, tmp_path, parser):
        path = _build_workbook(tmp_path / 'payers.xlsx', payers=[('001', 'Иванов Иван')])

        rows = parser.parse_beneficiaries(path)

        assert rows[0].amount == ''

    def test_missing_payers_sheet(self, tmp_path, parser):
        path = _build_workbook(tmp_path / 'payers.xlsx', sheets=(SETTINGS_SHEET,))

        with pytest.raises(ParseError):
            parser.parse_beneficiaries(path)


class TestRecipientMapping:
    def test_parse_mapping(self, tmp_path, parser):
        path = _build_workbook(
            tmp_path / 'emails.xlsx',
            sheets=(EMAILS_SHEET,),
            emails=[('Иванов Иван', 'ivanov@example.com'), (None, None), ('Петров Петр', 'p@x.com')],
        )

        mapping = parser.parse_recipient_mapping(path)

        assert mapping == {'Иванов Иван': 'ivanov@example.com', 'Петров Петр': 'p@x.com'}

    def test_incomplete_rows_reported(self, tmp_path, parser):
        path = _build_workbook(
            tmp_path / 'emails.xlsx',
            sheets=(EMAILS_SHEET,),
            emails=[
                ('Иванов Иван', 'ivanov@example.com'),
                ('Петров Петр', None),
                (None, 'orphan@example.com'),
            ],
        )

        with pytest.raises(ParseError) as exc_info:
            parser.parse_recipient_mapping(path)

        assert exc_info.value.kind == ErrorKind.USER
        assert exc_info.value.context['rows'] == [3, 4]


class TestUnreadableFiles:
    def test_corrupted_file_is_user_error(self, tmp_path, parser):
        path = tmp_path / 'broken.xlsx'
        path.write_bytes(b'this is not a workbook')

        with pytest.raises(ParseError) as exc_info:
            parser.parse_beneficiaries(path)

        assert exc_info.value.kind == ErrorKind.USER

    def test_missing_file_is_system_error(self, tmp_path, parser):
        with pytest.raises(ParseError) as exc_info:
            parser.parse_beneficiaries(tmp_path / 'absent.xlsx')

        assert exc_info.value.kind == ErrorKind.SYSTEM
