import hmac
import logging
import os
import time
from functools import wraps

from flask import request

from rapidracers import settings
from rapidracers.bucket import ObjectStore, decode_data_url
from rapidracers.errors import AuthError, ConfigError, NotFoundError, ValidationError
from rapidracers.sheets import CARS, RACES, SheetsDB

logger = logging.getLogger('RapidRacers.admin')


def _matches(given, expected):
    return hmac.compare_digest((given or '').encode('utf-8'), expected.encode('utf-8'))


def check_admin_credentials(auth):
    """Raise unless ``auth`` carries the configured Basic credentials."""
    username = os.environ.get(settings.ADMIN_USERNAME)
    password = os.environ.get(settings.ADMIN_PASSWORD)
    if not username or not password:
        raise ConfigError('Admin credentials not configured')
    if auth is None or (auth.type or '').lower() != 'basic':
        raise AuthError('Authentication required')
    # compare both before failing
    user_ok = _matches(auth.username, username)
    password_ok = _matches(auth.password, password)
    if not (user_ok and password_ok):
        logger.warning('Rejected admin credentials for user %s', auth.username)
        raise AuthError('Invalid credentials')


def require_admin_auth(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        check_admin_credentials(request.authorization)
        return f(*args, **kwargs)
    return decorated


def list_cars(db: SheetsDB, store: ObjectStore):
    cars = list(db.read(CARS))
    urls = []
    for car in cars:
        urls.extend([car.carimagepath, car.carthumb256path, car.carthumb64path])
    images = store.download_many_as_data_urls(urls)

    listing = []
    for i, car in enumerate(cars):
        preview, thumb256, thumb64 = images[3 * i:3 * i + 3]
        listing.append(dict(car.toJSON(),
                            rowIndex=car.row_index,
                            previewImageData=preview,
                            thumb256ImageData=thumb256,
                            thumb64ImageData=thumb64))
    return listing


def set_car_status(db: SheetsDB, row_index, status):
    """Overwrite one car's status cell. Any status text is stored as given."""
    try:
        row_index = int(row_index)
    except (TypeError, ValueError):
        raise ValidationError('Missing or invalid rowIndex')
    if row_index < 2:
        raise ValidationError('rowIndex must point below the header row')
    if not status:
        raise ValidationError('Missing status')

    db.update_cell(CARS, row_index, 'carstatus', status)
    logger.info('Car at row %s set to %s', row_index, status)
    return {'message': 'Status updated', 'rowIndex': row_index, 'status': status}


def list_races(db: SheetsDB):
    return [dict(race.toJSON(), rowIndex=race.row_index) for race in db.read(RACES)]


def race_image_path(season, racenumber, timestamp_ms):
    return f'races/{season}/{racenumber}/race-{racenumber}-{timestamp_ms}.png'


def attach_race_image(db: SheetsDB, store: ObjectStore, season, racenumber, image_data,
                      cache=None, timestamp_ms=None):
    if not season or not racenumber or not image_data:
        raise ValidationError('Missing season, racenumber, or imageData')

    races = db.read(RACES)
    race = next((r for r in races if r.matches(season, racenumber)), None)
    if race is None:
        raise NotFoundError('Race not found')

    png = decode_data_url(image_data, 'imageData')
    timestamp_ms = timestamp_ms or int(time.time() * 1000)
    url = store.upload(race_image_path(season, racenumber, timestamp_ms), png, 'image/png')
    db.update_cell(RACES, race.row_index, 'raceimage', url, races.sheet_name)

    if cache is not None:
        cache.invalidate(settings.RACE_INFO_CACHE_KEY)
    return {'message': 'Race image updated', 'imageUrl': url}
