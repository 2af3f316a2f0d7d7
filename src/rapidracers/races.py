"""Race queries: current and active races, approved entries, results, the
race asset bundle, and race entry.
"""
import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from rapidracers import settings
from rapidracers.bucket import ObjectStore
from rapidracers.errors import NotFoundError, UpstreamError, ValidationError
from rapidracers.garage import normalize_car_key
from rapidracers.sheets import CARS, ENTRIES, RACES, RESULTS, Car, Race, RaceEntry, SheetsDB
from rapidracers.ttl_cache import TTLCache

logger = logging.getLogger('RapidRacers.races')

# DD/MM/YYYY deadlines close at 20:00 UTC
DEFAULT_RACE_HOUR = 20


def parse_race_date(value) -> Optional[datetime]:
    """Parse an ISO-8601 or DD/MM/YYYY date into an aware UTC datetime, or None."""
    text = str(value or '').strip()
    if not text:
        return None
    iso = text[:-1] + '+00:00' if text[-1] in 'Zz' else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parts = text.split('/')
        if len(parts) != 3:
            logger.warning('Invalid date format: %s', text)
            return None
        try:
            day, month, year = (int(p) for p in parts)
            parsed = datetime(year, month, day, DEFAULT_RACE_HOUR, tzinfo=timezone.utc)
        except ValueError:
            logger.warning('Invalid date format: %s', text)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f'{moment.microsecond // 1000:03d}Z'


def normalize_race_date(value):
    """Canonical UTC timestamp text, or the raw value when it can't be parsed."""
    parsed = parse_race_date(value)
    return format_timestamp(parsed) if parsed else value


def race_to_json(race: Race):
    data = race.toJSON()
    data['racedeadline'] = normalize_race_date(race.racedeadline)
    data['racestart'] = normalize_race_date(race.racestart)
    return data


def get_all_races(db: SheetsDB) -> List[Race]:
    return list(db.read(RACES))


def select_current_race(races: Iterable[Race], now: datetime) -> Optional[Race]:
    """The open race with the nearest deadline still in the future."""
    candidates = []
    for race in races:
        if not race.is_open():
            continue
        deadline = parse_race_date(race.racedeadline)
        if deadline and deadline > now:
            candidates.append((deadline, race))
    if not candidates:
        return None
    return min(candidates, key=lambda c: c[0])[1]


def get_current_race(db: SheetsDB, cache: Optional[TTLCache] = None, now=None, bypass_cache=False):
    if cache is not None and not bypass_cache:
        cached = cache.get(settings.RACE_INFO_CACHE_KEY)
        if cached is not None:
            return cached

    race = select_current_race(get_all_races(db), now or datetime.now(timezone.utc))
    if race is None:
        logger.info('No current race found')
        return None
    info = race_to_json(race)
    if cache is not None:
        cache.set(settings.RACE_INFO_CACHE_KEY, info)
    return info


def list_active_races(races: Iterable[Race]) -> List[dict]:
    """Open races, furthest deadline first; races with unparseable deadlines go last."""
    dated, undated = [], []
    for race in races:
        if not race.is_open():
            continue
        deadline = parse_race_date(race.racedeadline)
        if deadline:
            dated.append((deadline, race))
        else:
            undated.append(race)
    dated.sort(key=lambda d: d[0], reverse=True)
    return [race_to_json(race) for race in [r for _, r in dated] + undated]


def _same(a, b):
    return str(a or '').strip() == str(b or '').strip()


def approved_entries(entries: Iterable[RaceEntry], cars: Iterable[Car],
                     season, racenumber) -> List[Tuple[RaceEntry, Car]]:
    """Entries for the race that are 'entered' and whose car is approved.

    A car entered twice is listed once, at its first entry row.
    """
    cars_by_number = {str(car.carnumber or '').strip(): car for car in cars}
    matched = []
    seen = set()
    for entry in entries:
        if not (_same(entry.season, season) and _same(entry.racenumber, racenumber)):
            continue
        if entry.status != 'entered':
            continue
        number = str(entry.carnumber or '').strip()
        car = cars_by_number.get(number)
        if car is None or not car.is_approved() or number in seen:
            continue
        seen.add(number)
        matched.append((entry, car))
    return matched


def get_race_entries(db: SheetsDB, store: ObjectStore, season, racenumber):
    if not season or not racenumber:
        raise ValidationError('Missing season or racenumber parameters')

    matched = approved_entries(db.read(ENTRIES), db.read(CARS), season, racenumber)
    urls = []
    for _, car in matched:
        urls.extend([car.carthumb64path, car.carthumb256path, car.carimagepath])
    images = store.download_many_as_data_urls(urls)

    entries = []
    for i, (entry, car) in enumerate(matched):
        thumb64, thumb256, preview = images[3 * i:3 * i + 3]
        entries.append({
            'carNumber': entry.carnumber,
            'carName': car.carname or 'Unknown Car',
            'carImagePath': car.carimagepath,
            'carThumb256Path': car.carthumb256path,
            'carThumb64Path': car.carthumb64path,
            'thumb64ImageData': thumb64,
            'thumb256ImageData': thumb256,
            'previewImageData': preview,
        })
    logger.info('Found %s approved entries for season %s race %s', len(entries), season, racenumber)
    return {
        'season': season,
        'racenumber': racenumber,
        'entries': entries,
        'entryCount': len(entries),
    }


def format_result_time(value):
    """Integer milliseconds become M:SS.mmm; anything else is shown as written."""
    text = str(value or '').strip()
    if not text.isdigit():
        return text
    minutes, ms = divmod(int(text), 60000)
    seconds, ms = divmod(ms, 1000)
    return f'{minutes}:{seconds:02d}.{ms:03d}'


def _sort_number(value):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return float('inf')


def get_race_results(db: SheetsDB, season, racenumber=None):
    if not season:
        raise ValidationError('Missing season parameter')

    results = [r for r in db.read(RESULTS)
               if _same(r.season, season) and (not racenumber or _same(r.racenumber, racenumber))]
    results.sort(key=lambda r: (_sort_number(r.racenumber), _sort_number(r.position)))
    return {
        'season': season,
        'racenumber': racenumber or None,
        'results': [dict(r.toJSON(), timeDisplay=format_result_time(r.time)) for r in results],
        'resultCount': len(results),
    }


def build_race_assets(db: SheetsDB, store: ObjectStore, season, racenumber) -> Tuple[str, bytes]:
    """Zip the race info and every approved entry's car files. Returns (filename, zip bytes)."""
    if not season or not racenumber:
        raise ValidationError('Missing season or racenumber parameters')

    race = next((r for r in db.read(RACES) if r.matches(season, racenumber)), None)
    if race is None:
        raise NotFoundError('Race not found')

    matched = approved_entries(db.read(ENTRIES), db.read(CARS), season, racenumber)
    if not matched:
        raise NotFoundError('No approved entries found for this race')

    folder = f'race-assets-season-{season}-racenumber-{racenumber}'
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as bundle:
        bundle.writestr(f'{folder}/race-info.json', json.dumps(race.toJSON(), indent=2))

        for entry, car in matched:
            car_folder = f'{folder}/car-{entry.carnumber}'
            bundle.writestr(f'{car_folder}/entry.json', json.dumps({
                'season': entry.season,
                'racenumber': entry.racenumber,
                'carnumber': entry.carnumber,
                'carname': car.carname,
                'entrystatus': entry.entrystatus,
            }, indent=2))

            try:
                car_json = store.download(car.carjsonpath)
                image_paths = json.loads(car_json.decode('utf-8')).get('imagePaths') or {}
            except (NotFoundError, UpstreamError, ValueError) as e:
                logger.warning('Skipping assets for car %s: car.json unavailable (%s)', entry.carnumber, e)
                continue
            bundle.writestr(f'{car_folder}/car.json', car_json)

            files = [
                (car.carimagepath, 'preview.png'),
                (car.carthumb256path, 'thumb256.png'),
                (car.carthumb64path, 'thumb64.png'),
                (image_paths.get('body'), 'body.png'),
                (image_paths.get('wheel'), 'wheel.png'),
            ]
            for url, name in files:
                if not url:
                    continue
                try:
                    bundle.writestr(f'{car_folder}/{name}', store.download(url))
                except (NotFoundError, UpstreamError) as e:
                    logger.warning('Skipping %s for car %s: %s', name, entry.carnumber, e)

    logger.info('Built race assets for season %s race %s with %s entries', season, racenumber, len(matched))
    return f'{folder}.zip', buffer.getvalue()


def enter_race(db: SheetsDB, car_data, cache: Optional[TTLCache] = None, now=None):
    """Enter an existing car in the current race. Entering twice is a no-op."""
    if not isinstance(car_data, dict) or not car_data.get('season') or not car_data.get('race'):
        raise ValidationError('Missing season or race in carData')
    season = str(car_data['season']).strip()
    race = str(car_data['race']).strip()

    current = get_current_race(db, cache, now)
    if not current:
        raise ValidationError('No active races available for entry')
    if not (_same(current['season'], season) and _same(current['racenumber'], race)):
        raise ValidationError('Entry not allowed: Only accepting entries for active race '
                              f"(Season {current['season']}, Race {current['racenumber']})")

    car_number = str(car_data.get('carNumber') or '').strip()
    car_key = normalize_car_key(car_data.get('carKey'))
    if not car_number or not car_key:
        raise ValidationError('Missing or invalid carNumber or carKey')

    car = next((c for c in db.read(CARS)
                if _same(c.carnumber, car_number) and normalize_car_key(c.carkey) == car_key), None)
    if car is None:
        raise NotFoundError('Car not found for that number and key')

    entries = db.read(ENTRIES)
    already_entered = any(_same(e.season, season) and _same(e.racenumber, race) and _same(e.carnumber, car_number)
                          for e in entries)
    if already_entered:
        logger.info('Car %s already entered in season %s race %s', car_number, season, race)
    else:
        db.append(ENTRIES, RaceEntry(season=season, racenumber=race, carnumber=car_number, entrystatus='entered'),
                  entries.sheet_name)
        logger.info('Entered car %s in season %s race %s', car_number, season, race)

    return {'message': 'Race entry successful', 'alreadyEntered': already_entered}
