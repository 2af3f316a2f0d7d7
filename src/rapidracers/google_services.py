import base64
import binascii
import json
import logging
import threading
from typing import Any, Dict

import gspread
from google.cloud import storage
from google.oauth2.service_account import Credentials

from rapidracers import settings
from rapidracers.errors import ConfigError

logger = logging.getLogger('RapidRacers.google')

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/devstorage.read_write",
]

REQUIRED_KEY_FIELDS = ('project_id', 'private_key', 'client_email')


def load_service_account_info(raw: str) -> Dict[str, Any]:
    """Parse a service-account key given either as JSON or as base64-encoded JSON."""
    try:
        info = json.loads(raw)
    except ValueError as parse_error:
        try:
            info = json.loads(base64.b64decode(raw, validate=True).decode('utf-8'))
        except (binascii.Error, UnicodeDecodeError, ValueError) as base64_error:
            raise ConfigError(f'Invalid JSON in {settings.SERVICE_ACCOUNT_KEY}: {parse_error}. '
                              f'Also tried base64 decoding: {base64_error}')

    if not isinstance(info, dict) or info.get('type') != 'service_account':
        raise ConfigError(f'{settings.SERVICE_ACCOUNT_KEY} is not a valid service account key (missing or wrong type)')
    for field in REQUIRED_KEY_FIELDS:
        if not info.get(field):
            raise ConfigError(f'{settings.SERVICE_ACCOUNT_KEY} is missing {field}')
    return info


class GoogleServices:
    """Long-lived Sheets and Storage clients built from one service account."""

    def __init__(self, info: Dict[str, Any]):
        self.project_id = info['project_id']
        self.credentials = Credentials.from_service_account_info(info, scopes=SCOPES)
        self._sheets = None
        self._storage = None
        self._lock = threading.Lock()

    @property
    def sheets(self) -> gspread.Client:
        with self._lock:
            if self._sheets is None:
                self._sheets = gspread.authorize(self.credentials)
            return self._sheets

    @property
    def storage(self) -> storage.Client:
        with self._lock:
            if self._storage is None:
                self._storage = storage.Client(project=self.project_id, credentials=self.credentials)
            return self._storage


_services = None
_services_lock = threading.Lock()


def get_services() -> GoogleServices:
    """Return the process-wide GoogleServices, building it on first use."""
    global _services
    with _services_lock:
        if _services is None:
            info = load_service_account_info(settings.required(settings.SERVICE_ACCOUNT_KEY))
            _services = GoogleServices(info)
            logger.info('Google services initialised for project %s as %s', info['project_id'], info['client_email'])
        return _services
