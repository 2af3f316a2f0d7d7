import os

from rapidracers.errors import ConfigError

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

# Race metadata changes rarely; a few minutes of staleness is fine.
RACE_INFO_CACHE_TTL = int(os.environ.get('RACE_INFO_CACHE_TTL', '300'))
RACE_INFO_CACHE_KEY = 'raceInfo'

DOWNLOAD_WORKERS = int(os.environ.get('DOWNLOAD_WORKERS', '8'))
MAX_CONTENT_LENGTH_MB = int(os.environ.get('MAX_CONTENT_LENGTH_MB', '32'))

STORAGE_PUBLIC_ROOT = os.environ.get('STORAGE_PUBLIC_ROOT', 'https://storage.googleapis.com')

ZENOH_CONFIG = os.environ.get('ZENOH_CONFIG')

# Names of the deployment variables that must be present when used
SERVICE_ACCOUNT_KEY = 'GOOGLE_SERVICE_ACCOUNT_KEY'
STORAGE_BUCKET = 'GOOGLE_CLOUD_STORAGE_BUCKET'
CARS_SPREADSHEET_ID = 'GOOGLE_SHEETS_CARS_SPREADSHEET_ID'
RACES_SPREADSHEET_ID = 'GOOGLE_SHEETS_SPREADSHEET_ID'
ENTRIES_SPREADSHEET_ID = 'GOOGLE_SHEETS_SUBMISSIONS_SPREADSHEET_ID'
RESULTS_SPREADSHEET_ID = 'GOOGLE_SHEETS_RESULTS_SPREADSHEET_ID'
ADMIN_USERNAME = 'ADMIN_USERNAME'
ADMIN_PASSWORD = 'ADMIN_PASSWORD'


def required(name):
    """Return the value of a required environment variable or raise ConfigError."""
    value = os.environ.get(name)
    if not value:
        raise ConfigError(f'{name} not set')
    return value


def flag(name, default='0'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


def sheet_name_override(table_name):
    return os.environ.get(f'SHEET_NAME_{table_name.upper()}') or None


def thumbnails_enabled():
    return flag('CAR_THUMBNAILS')


def zenoh_enabled():
    return flag('ZENOH_ENABLED')
