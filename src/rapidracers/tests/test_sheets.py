"""
Tests for the spreadsheet table store
"""

import os
from unittest import TestCase
from unittest.mock import patch

from rapidracers.errors import ConfigError, TableNotFound
from rapidracers.sheets import CARS, ENTRIES, RACES, Car, RaceEntry, SheetsDB, column_letter
from rapidracers.tests.fakes import SPREADSHEET_ENV, FakeSheetsClient, FakeSpreadsheet, make_db


class RecordTest(TestCase):
    """Test positional row mapping"""

    def test_missing_trailing_cells_are_none(self):
        """Test short rows leave the remaining columns as None"""
        car = Car.from_row(['1', '7', '12345678', 'Zoom'], row_index=3)

        self.assertEqual(car.carname, 'Zoom')
        self.assertIsNone(car.carstatus)
        self.assertIsNone(car.carjsonpath)
        self.assertEqual(car.row_index, 3)

    def test_to_row_writes_blank_for_none(self):
        """Test None values are written as empty cells"""
        entry = RaceEntry(season='1', racenumber='2', carnumber='7')

        self.assertEqual(entry.to_row(), ['1', '2', '7', ''])

    def test_status_helpers(self):
        """Test status comparisons ignore case and whitespace"""
        self.assertTrue(Car(carstatus=' Approved ').is_approved())
        self.assertFalse(Car(carstatus='submitted').is_approved())

    def test_column_letters(self):
        """Test column letters for the table layouts"""
        self.assertEqual(column_letter(1), 'A')
        self.assertEqual(column_letter(27), 'AA')
        self.assertEqual(CARS.last_column, 'J')
        self.assertEqual(RACES.last_column, 'H')
        self.assertEqual(CARS.column_for('carstatus'), 'F')
        self.assertEqual(RACES.column_for('raceimage'), 'G')


class SheetsDBTest(TestCase):
    """Test SheetsDB reads and writes against a fake spreadsheet"""

    def setUp(self):
        patcher = patch.dict(os.environ, SPREADSHEET_ENV)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_resolves_first_matching_candidate(self):
        """Test the lookup walks the candidate list until a sheet answers"""
        db, spreadsheets = make_db(cars=[['1', '1', '12345678', 'Zoom']], sheet_names={'cars': 'Cars'})

        self.assertEqual(db.resolve_sheet_name(CARS), 'Cars')
        header_reads = spreadsheets['cars-id'].gets
        self.assertEqual(header_reads, ["'rapidracers-cars'!A1:J1", "'Sheet1'!A1:J1", "'Cars'!A1:J1"])

    def test_no_candidate_raises_table_not_found(self):
        """Test a spreadsheet without any candidate sheet is a configuration error"""
        db = SheetsDB(FakeSheetsClient({'cars-id': FakeSpreadsheet({'Other': [['x']]})}))

        with self.assertRaises(TableNotFound) as ctx:
            db.resolve_sheet_name(CARS)
        self.assertIsInstance(ctx.exception, ConfigError)
        self.assertEqual(ctx.exception.status_code, 500)

    def test_sheet_name_override_skips_probing(self):
        """Test SHEET_NAME_<TABLE> pins the sheet name"""
        db, spreadsheets = make_db(sheet_names={'cars': 'Pinned'})

        with patch.dict(os.environ, {'SHEET_NAME_CARS': 'Pinned'}):
            self.assertEqual(db.resolve_sheet_name(CARS), 'Pinned')
        self.assertEqual(spreadsheets['cars-id'].gets, [])

    def test_missing_spreadsheet_setting(self):
        """Test an unset spreadsheet id raises ConfigError"""
        db, _ = make_db()

        with patch.dict(os.environ, {'GOOGLE_SHEETS_CARS_SPREADSHEET_ID': ''}):
            with self.assertRaises(ConfigError):
                db.read(CARS)

    def test_read_assigns_row_indexes_and_skips_blank_rows(self):
        """Test row indexes are 1-based sheet rows below the header"""
        db, _ = make_db(cars=[
            ['1', '1', '11111111', 'Alpha'],
            [],
            ['1', '2', '22222222', 'Beta'],
        ])

        rows = db.read(CARS)

        self.assertEqual(rows.sheet_name, 'rapidracers-cars')
        self.assertEqual([c.carname for c in rows], ['Alpha', 'Beta'])
        self.assertEqual([c.row_index for c in rows], [2, 4])

    def test_read_column(self):
        """Test reading a single column below the header"""
        db, _ = make_db(cars=[['1', '3'], ['2'], ['1', '9']])

        self.assertEqual(db.read_column(CARS, 'carnumber'), ['3', '', '9'])

    def test_append_and_update(self):
        """Test appending a row and overwriting it in place"""
        db, spreadsheets = make_db(entries=[['1', '1', '5', 'entered']])

        db.append(ENTRIES, RaceEntry(season='1', racenumber='2', carnumber='5', entrystatus='entered'))
        rows = spreadsheets['entries-id'].sheets['rapidracers-race-entries']
        self.assertEqual(rows[-1], ['1', '2', '5', 'entered'])

        entry = db.read(ENTRIES).records[1]
        entry.entrystatus = 'withdrawn'
        db.update(ENTRIES, entry)
        self.assertEqual(rows[2], ['1', '2', '5', 'withdrawn'])

    def test_update_cell(self):
        """Test a single-cell overwrite only touches that column"""
        db, spreadsheets = make_db(cars=[['1', '1', '11111111', 'Alpha', '1', 'submitted']])

        db.update_cell(CARS, 2, 'carstatus', 'approved')

        row = spreadsheets['cars-id'].sheets['rapidracers-cars'][1]
        self.assertEqual(row[:6], ['1', '1', '11111111', 'Alpha', '1', 'approved'])

    def test_spreadsheet_handle_is_reused(self):
        """Test the spreadsheet is opened once per id"""
        db, _ = make_db(cars=[['1', '1']])

        db.read(CARS)
        db.read(CARS)

        self.assertEqual(db.client.opened, ['cars-id'])

    def test_sheet_name_looked_up_on_every_read(self):
        """Test each read header_reads the candidates again"""
        db, spreadsheets = make_db(cars=[['1', '1']], sheet_names={'cars': 'cars'})

        db.read(CARS)
        db.read(CARS)

        header_reads = [r for r in spreadsheets['cars-id'].gets if r.endswith('A1:J1')]
        self.assertEqual(len(header_reads), 8)

    def test_renamed_sheet_is_found_on_next_read(self):
        """Test a tab renamed to another candidate is picked up without a restart"""
        db, spreadsheets = make_db(cars=[['1', '1', '12345678', 'Zoom']])
        self.assertEqual(db.read(CARS).sheet_name, 'rapidracers-cars')

        sheets = spreadsheets['cars-id'].sheets
        sheets['Cars'] = sheets.pop('rapidracers-cars')

        rows = db.read(CARS)
        self.assertEqual(rows.sheet_name, 'Cars')
        self.assertEqual([c.carname for c in rows], ['Zoom'])
