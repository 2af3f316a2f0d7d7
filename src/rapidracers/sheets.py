"""Google Sheets as a table store.

Each logical table lives in its own spreadsheet. The sheet (tab) name is
resolved on every request by probing a list of candidate names (or pinned with
SHEET_NAME_<TABLE>), and every row below the header maps positionally onto a
record class. Neither sheet names nor row indexes are cached.
"""
import logging
import threading
from typing import Dict, List, Optional

import gspread
from gspread.utils import absolute_range_name, rowcol_to_a1

from rapidracers import settings
from rapidracers.errors import ConfigError, TableNotFound, UpstreamError

logger = logging.getLogger('RapidRacers.sheets')

RAW_INPUT = {'valueInputOption': 'RAW'}


def column_letter(column_number: int) -> str:
    return rowcol_to_a1(1, column_number)[:-1]


class SheetRecord:
    COLUMNS: List[str] = []

    def __init__(self, row_index=None, **values):
        self.row_index: Optional[int] = row_index
        for column in self.COLUMNS:
            setattr(self, column, values.get(column))

    @classmethod
    def from_row(cls, row, row_index=None):
        values = {column: (row[i] if i < len(row) else None) for i, column in enumerate(cls.COLUMNS)}
        return cls(row_index=row_index, **values)

    def to_row(self) -> List[str]:
        return ['' if getattr(self, column) is None else str(getattr(self, column)) for column in self.COLUMNS]

    def toJSON(self):
        return {column: getattr(self, column) for column in self.COLUMNS}

    def __str__(self):
        return f"{type(self).__name__}(row {self.row_index}): " + ", ".join(f"{c}={getattr(self, c)}" for c in self.COLUMNS)


def _lower(value):
    return str(value or '').strip().lower()


class Car(SheetRecord):
    COLUMNS = ['season', 'carnumber', 'carkey', 'carname', 'carversion', 'carstatus',
               'carimagepath', 'carthumb256path', 'carthumb64path', 'carjsonpath']

    @property
    def status(self):
        return _lower(self.carstatus)

    def is_approved(self):
        return self.status == 'approved'


class Race(SheetRecord):
    COLUMNS = ['season', 'racenumber', 'racename', 'racedeadline', 'racestart',
               'racedescription', 'raceimage', 'racestatus']

    @property
    def status(self):
        return _lower(self.racestatus)

    def is_open(self):
        return self.status in ('active', 'approved')

    def matches(self, season, racenumber):
        return str(self.season) == str(season) and str(self.racenumber) == str(racenumber)


class RaceEntry(SheetRecord):
    COLUMNS = ['season', 'racenumber', 'carnumber', 'entrystatus']

    @property
    def status(self):
        return _lower(self.entrystatus)


class RaceResult(SheetRecord):
    COLUMNS = ['season', 'racenumber', 'position', 'time', 'status', 'carnumber', 'carname', 'notes']


class Table:
    def __init__(self, name, spreadsheet_setting, candidates, record_cls):
        self.name = name
        self.spreadsheet_setting = spreadsheet_setting
        self.candidates = list(candidates)
        self.record_cls = record_cls

    @property
    def last_column(self):
        return column_letter(len(self.record_cls.COLUMNS))

    def column_for(self, column_name):
        return column_letter(self.record_cls.COLUMNS.index(column_name) + 1)

    def spreadsheet_id(self):
        return settings.required(self.spreadsheet_setting)


CARS = Table('cars', settings.CARS_SPREADSHEET_ID,
             ['rapidracers-cars', 'Sheet1', 'Cars', 'cars'], Car)
RACES = Table('races', settings.RACES_SPREADSHEET_ID,
              ['rapidracers-race-info', 'Sheet1', 'Races', 'races', 'RaceInfo'], Race)
ENTRIES = Table('entries', settings.ENTRIES_SPREADSHEET_ID,
                ['rapidracers-race-entries', 'Sheet1', 'RaceEntries', 'race-entries'], RaceEntry)
RESULTS = Table('results', settings.RESULTS_SPREADSHEET_ID,
                ['rapidracers-race-results', 'Sheet1', 'Results', 'results'], RaceResult)


class TableRows:
    """Records read from one table, plus the sheet name they came from."""

    def __init__(self, table: Table, sheet_name: str, records: List[SheetRecord]):
        self.table = table
        self.sheet_name = sheet_name
        self.records = records

    def __iter__(self):
        return iter(self.records)

    def __len__(self):
        return len(self.records)


class SheetsDB:
    def __init__(self, client: gspread.Client):
        self.client = client
        self._spreadsheets: Dict[str, gspread.Spreadsheet] = {}
        self._lock = threading.Lock()

    def spreadsheet(self, table: Table):
        spreadsheet_id = table.spreadsheet_id()
        with self._lock:
            sh = self._spreadsheets.get(spreadsheet_id)
            if sh is None:
                try:
                    sh = self.client.open_by_key(spreadsheet_id)
                except gspread.exceptions.SpreadsheetNotFound:
                    raise ConfigError(f'Spreadsheet for {table.name} not found or not shared with the service account')
                except gspread.exceptions.APIError as e:
                    raise UpstreamError(f'Failed to open {table.name} spreadsheet: {e}')
                self._spreadsheets[spreadsheet_id] = sh
            return sh

    def resolve_sheet_name(self, table: Table) -> str:
        override = settings.sheet_name_override(table.name)
        if override:
            return override
        sh = self.spreadsheet(table)
        for name in table.candidates:
            try:
                sh.values_get(absolute_range_name(name, f'A1:{table.last_column}1'))
            except gspread.exceptions.APIError:
                logger.debug('Sheet %s not present for %s table', name, table.name)
                continue
            logger.debug('Resolved %s table to sheet %s', table.name, name)
            return name
        raise TableNotFound(f'Unable to locate {table.name} sheet (tried {", ".join(table.candidates)})')

    def get_values(self, table: Table, a1_range: str, sheet_name: str) -> List[List[str]]:
        try:
            response = self.spreadsheet(table).values_get(absolute_range_name(sheet_name, a1_range))
        except gspread.exceptions.APIError as e:
            raise UpstreamError(f'Failed to read {table.name} sheet: {e}')
        return response.get('values', [])

    def read(self, table: Table) -> TableRows:
        sheet_name = self.resolve_sheet_name(table)
        rows = self.get_values(table, f'A:{table.last_column}', sheet_name)
        records = [table.record_cls.from_row(row, row_index=i + 2)
                   for i, row in enumerate(rows[1:]) if any(str(cell).strip() for cell in row)]
        logger.info('Read %s rows from %s sheet %s', len(records), table.name, sheet_name)
        return TableRows(table, sheet_name, records)

    def read_column(self, table: Table, column_name: str) -> List[str]:
        sheet_name = self.resolve_sheet_name(table)
        letter = table.column_for(column_name)
        rows = self.get_values(table, f'{letter}:{letter}', sheet_name)
        return [row[0] if row else '' for row in rows[1:]]

    def append(self, table: Table, record: SheetRecord, sheet_name: Optional[str] = None):
        sheet_name = sheet_name or self.resolve_sheet_name(table)
        try:
            self.spreadsheet(table).values_append(
                absolute_range_name(sheet_name, f'A:{table.last_column}'),
                RAW_INPUT, {'values': [record.to_row()]})
        except gspread.exceptions.APIError as e:
            raise UpstreamError(f'Failed to append to {table.name} sheet: {e}')
        logger.info('Appended row to %s sheet %s', table.name, sheet_name)

    def update(self, table: Table, record: SheetRecord, sheet_name: Optional[str] = None):
        """Overwrite the record's row in place. The row index must come from a read in this request."""
        if not record.row_index:
            raise ValueError('Cannot update a record without a row index')
        sheet_name = sheet_name or self.resolve_sheet_name(table)
        row = record.row_index
        try:
            self.spreadsheet(table).values_update(
                absolute_range_name(sheet_name, f'A{row}:{table.last_column}{row}'),
                RAW_INPUT, {'values': [record.to_row()]})
        except gspread.exceptions.APIError as e:
            raise UpstreamError(f'Failed to update {table.name} row {row}: {e}')
        logger.info('Updated %s sheet %s row %s', table.name, sheet_name, row)

    def update_cell(self, table: Table, row_index: int, column_name: str, value,
                    sheet_name: Optional[str] = None):
        sheet_name = sheet_name or self.resolve_sheet_name(table)
        cell = f'{table.column_for(column_name)}{row_index}'
        try:
            self.spreadsheet(table).values_update(
                absolute_range_name(sheet_name, f'{cell}:{cell}'),
                RAW_INPUT, {'values': [[str(value)]]})
        except gspread.exceptions.APIError as e:
            raise UpstreamError(f'Failed to update {table.name} cell {cell}: {e}')
        logger.info('Updated %s sheet %s cell %s', table.name, sheet_name, cell)
