"""Cars: identity allocation, the garage submission pipeline and car read queries."""
import json
import logging
import re
import secrets
import string
from typing import Iterable, List, Optional

from rapidracers import settings
from rapidracers.bucket import ObjectStore, decode_data_url
from rapidracers.compositor import composite, make_thumbnail, placements_from_payload
from rapidracers.errors import NotFoundError, ValidationError
from rapidracers.sheets import CARS, Car, SheetsDB

logger = logging.getLogger('RapidRacers.garage')

CAR_KEY_LENGTH = 8
THUMBNAIL_SIZES = (256, 64)


def normalize_car_key(value) -> Optional[str]:
    """Strip non-digits; only an exactly 8-digit result is a valid key."""
    if value is None:
        return None
    digits = re.sub(r'\D', '', str(value))
    if len(digits) != CAR_KEY_LENGTH:
        return None
    return digits


def generate_car_key() -> str:
    # collisions are not checked; 10^8 keys makes them rare enough
    return ''.join(secrets.choice(string.digits) for _ in range(CAR_KEY_LENGTH))


def _as_int(value, default=None):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def next_car_number(numbers: Iterable) -> int:
    existing = [n for n in (_as_int(v) for v in numbers) if n is not None]
    return max(existing) + 1 if existing else 1


def get_next_car_number(db: SheetsDB) -> str:
    """Next number after every number in the cars table, read live.

    Two concurrent submissions can read the same maximum; there is no
    transactional increment behind this.
    """
    return str(next_car_number(db.read_column(CARS, 'carnumber')))


def find_existing_car(cars: Iterable[Car], car_name, car_key=None, car_number=None) -> Optional[Car]:
    """Match on name plus either key or number. Names compare trimmed and case-insensitive."""
    name = str(car_name or '').strip().lower()
    if not name:
        return None
    key = normalize_car_key(car_key)
    number = str(car_number).strip() if car_number not in (None, '') else None
    for car in cars:
        if str(car.carname or '').strip().lower() != name:
            continue
        if key and normalize_car_key(car.carkey) == key:
            return car
        if number and str(car.carnumber or '').strip() == number:
            return car
    return None


class CarSubmission:
    def __init__(self, season, car_name, body_png, wheel_png, placements, car_key=None, car_number=None,
                 acceleration=None, top_speed=None, body_offset_x=0, body_offset_y=0):
        self.season = season
        self.car_name = car_name
        self.body_png = body_png
        self.wheel_png = wheel_png
        self.placements = placements
        self.car_key = car_key
        self.car_number = car_number
        self.acceleration = acceleration
        self.top_speed = top_speed
        self.body_offset_x = body_offset_x
        self.body_offset_y = body_offset_y

    @classmethod
    def from_payload(cls, car_data):
        if not isinstance(car_data, dict) or not car_data.get('season'):
            raise ValidationError('Missing carData or season')
        season = str(car_data['season']).strip()
        if '/' in season or not season:
            raise ValidationError('Invalid season')
        car_name = str(car_data.get('carName') or '').strip()
        if not car_name or not car_data.get('bodyImageData') or not car_data.get('wheelImageData'):
            raise ValidationError('Missing required car fields')
        return cls(
            season=season,
            car_name=car_name,
            body_png=decode_data_url(car_data['bodyImageData'], 'bodyImageData'),
            wheel_png=decode_data_url(car_data['wheelImageData'], 'wheelImageData'),
            placements=placements_from_payload(car_data.get('wheelPositions')),
            car_key=car_data.get('carKey'),
            car_number=car_data.get('carNumber'),
            acceleration=car_data.get('acceleration'),
            top_speed=car_data.get('topSpeed'),
            body_offset_x=car_data.get('bodyOffsetX') or 0,
            body_offset_y=car_data.get('bodyOffsetY') or 0,
        )


def car_asset_paths(season, car_number, thumbnails=False):
    base = f'{season}/{car_number}/'
    paths = {
        'json': f'{base}car.json',
        'body': f'{base}body.png',
        'wheel': f'{base}wheel.png',
        'preview': f'{base}preview.png',
    }
    if thumbnails:
        for size in THUMBNAIL_SIZES:
            paths[f'thumb{size}'] = f'{base}thumb{size}.png'
    return paths


def build_car_document(submission: CarSubmission, car_key, car_number, car_version, urls):
    image_paths = {name: url for name, url in urls.items() if name != 'json'}
    return {
        'season': submission.season,
        'carName': submission.car_name,
        'carNumber': car_number,
        'carKey': car_key,
        'carVersion': car_version,
        'props': {
            'acceleration': submission.acceleration,
            'topSpeed': submission.top_speed,
        },
        'bodyOffsetX': submission.body_offset_x,
        'bodyOffsetY': submission.body_offset_y,
        'wheels': [dict(p.toJSON(), imagePath=urls['wheel']) for p in submission.placements],
        'widgets': [],
        'imagePaths': image_paths,
    }


def submit_car(db: SheetsDB, store: ObjectStore, car_data, thumbnails=None):
    """Create or update a car from the garage editor.

    Writes the four assets (plus thumbnails when enabled) and then the sheet
    row. Nothing is undone if a later step fails.
    """
    submission = CarSubmission.from_payload(car_data)
    thumbnails = settings.thumbnails_enabled() if thumbnails is None else thumbnails

    cars = db.read(CARS)
    existing = find_existing_car(cars, submission.car_name, submission.car_key, submission.car_number)
    if existing:
        car_key = existing.carkey
        car_number = str(existing.carnumber)
        car_version = str((_as_int(existing.carversion, 0)) + 1)
        logger.info('Resubmission of car %s (%s) at row %s, version %s',
                    car_number, submission.car_name, existing.row_index, car_version)
    else:
        car_key = generate_car_key()
        car_number = get_next_car_number(db)
        car_version = '1'
        logger.info('New car %s (%s) for season %s', car_number, submission.car_name, submission.season)

    preview_png = composite(submission.body_png, submission.wheel_png, submission.placements)

    paths = car_asset_paths(submission.season, car_number, thumbnails)
    urls = {name: store.public_url(path) for name, path in paths.items()}
    document = build_car_document(submission, car_key, car_number, car_version, urls)

    store.upload(paths['json'], json.dumps(document, indent=2).encode('utf-8'), 'application/json')
    store.upload(paths['body'], submission.body_png, 'image/png')
    store.upload(paths['wheel'], submission.wheel_png, 'image/png')
    store.upload(paths['preview'], preview_png, 'image/png')
    if thumbnails:
        for size in THUMBNAIL_SIZES:
            store.upload(paths[f'thumb{size}'], make_thumbnail(preview_png, size), 'image/png')

    row = Car(
        season=submission.season,
        carnumber=car_number,
        carkey=car_key,
        carname=submission.car_name,
        carversion=car_version,
        carstatus='submitted',
        carimagepath=urls['preview'],
        carthumb256path=urls.get('thumb256'),
        carthumb64path=urls.get('thumb64'),
        carjsonpath=urls['json'],
    )
    if existing:
        row.row_index = existing.row_index
        row.carstatus = existing.carstatus or 'submitted'
        if not thumbnails:
            row.carthumb256path = existing.carthumb256path
            row.carthumb64path = existing.carthumb64path
        db.update(CARS, row, cars.sheet_name)
    else:
        db.append(CARS, row, cars.sheet_name)

    return {
        'message': 'Garage submission successful',
        'carKey': car_key,
        'carNumber': car_number,
        'carVersion': car_version,
        'carJsonPath': urls['json'],
        'carImagePath': urls['preview'],
    }


def list_approved_cars(db: SheetsDB, store: ObjectStore) -> List[dict]:
    cars = [car for car in db.read(CARS) if car.is_approved()]
    previews = store.download_many_as_data_urls(car.carimagepath for car in cars)
    return [dict(car.toJSON(), previewImageData=preview) for car, preview in zip(cars, previews)]


def list_car_names(db: SheetsDB) -> List[str]:
    return [name.strip() for name in db.read_column(CARS, 'carname') if name and name.strip()]


def lookup_car(db: SheetsDB, store: ObjectStore, car_name, car_key):
    if not car_name or not car_key:
        raise ValidationError('Missing carname or carkey')
    key = normalize_car_key(car_key)
    if not key:
        raise ValidationError('Invalid car key')

    name = str(car_name).strip().lower()
    car = next((c for c in db.read(CARS)
                if normalize_car_key(c.carkey) == key and str(c.carname or '').strip().lower() == name), None)
    if car is None:
        raise NotFoundError('Car not found')

    car_doc = store.download_json(car.carjsonpath)
    image_paths = (car_doc or {}).get('imagePaths') or {}
    body_data, wheel_data = store.download_many_as_data_urls(
        [image_paths.get('body') or car.carimagepath, image_paths.get('wheel')])
    return {
        'car': car.toJSON(),
        'carData': car_doc,
        'assets': {
            'bodyImageData': body_data,
            'wheelImageData': wheel_data,
        },
    }
