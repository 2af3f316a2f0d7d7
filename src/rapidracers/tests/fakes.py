"""
In-memory stand-ins for the gspread and google-cloud-storage clients
"""

import io
import re
from unittest.mock import Mock

import gspread
from google.api_core.exceptions import NotFound
from PIL import Image

from rapidracers import settings
from rapidracers.sheets import SheetsDB

SPREADSHEET_ENV = {
    settings.CARS_SPREADSHEET_ID: 'cars-id',
    settings.RACES_SPREADSHEET_ID: 'races-id',
    settings.ENTRIES_SPREADSHEET_ID: 'entries-id',
    settings.RESULTS_SPREADSHEET_ID: 'results-id',
}

CAR_HEADER = ['season', 'carnumber', 'carkey', 'carname', 'carversion', 'carstatus',
              'carimagepath', 'carthumb256path', 'carthumb64path', 'carjsonpath']
RACE_HEADER = ['season', 'racenumber', 'racename', 'racedeadline', 'racestart',
               'racedescription', 'raceimage', 'racestatus']
ENTRY_HEADER = ['season', 'racenumber', 'carnumber', 'entrystatus']
RESULT_HEADER = ['season', 'racenumber', 'position', 'time', 'status', 'carnumber', 'carname', 'notes']

RANGE_RE = re.compile(r'^([A-Z]+)(\d*):([A-Z]+)(\d*)$')


def api_error(message='Unable to parse range', code=400):
    response = Mock()
    response.json.return_value = {'error': {'code': code, 'message': message, 'status': 'INVALID_ARGUMENT'}}
    response.text = message
    response.status_code = code
    return gspread.exceptions.APIError(response)


def column_index(letters):
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord('A') + 1)
    return index - 1


class FakeSpreadsheet:
    """Holds named sheets as lists of rows and answers A1-range calls on them."""

    def __init__(self, sheets=None):
        self.sheets = {name: [list(row) for row in rows] for name, rows in (sheets or {}).items()}
        self.gets = []
        self.appends = []
        self.updates = []

    def _locate(self, range_name):
        sheet, _, cells = range_name.rpartition('!')
        sheet = sheet[1:-1].replace("''", "'") if sheet.startswith("'") else sheet
        if sheet not in self.sheets:
            raise api_error(f'Unable to parse range: {range_name}')
        match = RANGE_RE.match(cells)
        first_col, first_row, last_col, last_row = match.groups()
        return (sheet, column_index(first_col), column_index(last_col),
                int(first_row) if first_row else None, int(last_row) if last_row else None)

    def values_get(self, range_name, params=None):
        self.gets.append(range_name)
        sheet, c0, c1, r0, r1 = self._locate(range_name)
        rows = self.sheets[sheet]
        if r0:
            rows = rows[r0 - 1:r1]
        values = [row[c0:c1 + 1] for row in rows]
        while values and not values[-1]:
            values.pop()
        return {'range': range_name, 'values': values}

    def values_append(self, range_name, params=None, body=None):
        sheet = self._locate(range_name)[0]
        for row in body['values']:
            self.sheets[sheet].append(list(row))
            self.appends.append((sheet, list(row)))
        return {}

    def values_update(self, range_name, params=None, body=None):
        sheet, c0, _, r0, _ = self._locate(range_name)
        rows = self.sheets[sheet]
        for offset, values in enumerate(body['values']):
            index = r0 - 1 + offset
            while len(rows) <= index:
                rows.append([])
            row = rows[index]
            while len(row) < c0 + len(values):
                row.append('')
            row[c0:c0 + len(values)] = values
            self.updates.append((sheet, index + 1, c0, list(values)))
        return {}


class FakeSheetsClient:
    def __init__(self, spreadsheets):
        self.spreadsheets = spreadsheets
        self.opened = []

    def open_by_key(self, key):
        self.opened.append(key)
        if key not in self.spreadsheets:
            raise gspread.exceptions.SpreadsheetNotFound(key)
        return self.spreadsheets[key]


def make_db(cars=None, races=None, entries=None, results=None, sheet_names=None):
    """SheetsDB over fake spreadsheets; rows exclude the header, which is added here."""
    names = {'cars': 'rapidracers-cars', 'races': 'rapidracers-race-info',
             'entries': 'rapidracers-race-entries', 'results': 'rapidracers-race-results'}
    names.update(sheet_names or {})
    spreadsheets = {
        'cars-id': FakeSpreadsheet({names['cars']: [CAR_HEADER] + list(cars or [])}),
        'races-id': FakeSpreadsheet({names['races']: [RACE_HEADER] + list(races or [])}),
        'entries-id': FakeSpreadsheet({names['entries']: [ENTRY_HEADER] + list(entries or [])}),
        'results-id': FakeSpreadsheet({names['results']: [RESULT_HEADER] + list(results or [])}),
    }
    return SheetsDB(FakeSheetsClient(spreadsheets)), spreadsheets


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name

    def upload_from_string(self, data, content_type=None):
        if isinstance(data, str):
            data = data.encode('utf-8')
        self.bucket.objects[self.name] = (bytes(data), content_type)

    def download_as_bytes(self):
        if self.name not in self.bucket.objects:
            raise NotFound(f'No such object: {self.bucket.name}/{self.name}')
        return self.bucket.objects[self.name][0]


class FakeBucket:
    def __init__(self, name):
        self.name = name
        self.objects = {}

    def blob(self, name):
        return FakeBlob(self, name)


class FakeStorageClient:
    def __init__(self):
        self.buckets = {}

    def bucket(self, name):
        return self.buckets.setdefault(name, FakeBucket(name))


def png_bytes(size, color=(255, 0, 0, 255)):
    out = io.BytesIO()
    Image.new('RGBA', size, color).save(out, format='PNG')
    return out.getvalue()
