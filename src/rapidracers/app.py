import time
import uuid

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException, MethodNotAllowed

from rapidracers import admin, carart, garage, messaging, races, settings
from rapidracers.bucket import ObjectStore
from rapidracers.errors import AuthError, RapidRacersError, ValidationError
from rapidracers.google_services import get_services
from rapidracers.log_config import configure_logging
from rapidracers.sheets import SheetsDB
from rapidracers.ttl_cache import TTLCache

logger = configure_logging()

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = settings.MAX_CONTENT_LENGTH_MB * 1024 * 1024

logger.info("Starting RapidRacers API; LOG_LEVEL=%s", settings.LOG_LEVEL)

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-cache, no-store, must-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}

race_info_cache = TTLCache(settings.RACE_INFO_CACHE_TTL)
invalidation_bus = messaging.connect_cache(race_info_cache)

_sheets_db = None
_object_store = None


def sheets_db() -> SheetsDB:
    global _sheets_db
    if _sheets_db is None:
        _sheets_db = SheetsDB(get_services().sheets)
    return _sheets_db


def object_store() -> ObjectStore:
    global _object_store
    if _object_store is None:
        _object_store = ObjectStore(get_services().storage, settings.required(settings.STORAGE_BUCKET))
    return _object_store


def json_body():
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def require_method(*methods):
    if request.method not in methods:
        raise MethodNotAllowed(valid_methods=list(methods))


@app.before_request
def ensure_request_id():
    # propagate incoming request id or generate one
    g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
    g.request_started = time.monotonic()


@app.before_request
def log_request_info():
    headers = dict(request.headers)
    if 'Authorization' in headers:
        headers['Authorization'] = '<redacted>'
    body = request.get_json(silent=True) if request.is_json else None
    logger.info(f'Request received for url: {request.url}, method: {request.method}', extra={'request_info': {
        'url': request.url,
        'path': request.path,
        'request_args': dict(request.args),
        'method': request.method,
        'headers': headers,
        # image payloads are large; keys are enough
        'json_keys': sorted(body) if isinstance(body, dict) else None,
    }})


@app.after_request
def log_response(response):
    status = response.status_code
    response.headers['X-Request-ID'] = g.get('request_id', '')
    elapsed_ms = (time.monotonic() - g.get('request_started', time.monotonic())) * 1000
    if status >= 500:
        logger.error('Response %s %s returned %s in %.0fms', request.method, request.path, status, elapsed_ms)
    elif status >= 400:
        logger.warning('Response %s %s returned %s in %.0fms', request.method, request.path, status, elapsed_ms)
    else:
        logger.info('Response %s %s returned %s in %.0fms', request.method, request.path, status, elapsed_ms)
    return response


def respond_error(message, status=400, headers=None):
    return jsonify({'message': message}), status, headers or {}


@app.errorhandler(RapidRacersError)
def handle_app_error(e):
    if e.status_code >= 500:
        logger.error('%s during %s %s: %s', type(e).__name__, request.method, request.path, e.message)
    headers = {'WWW-Authenticate': 'Basic realm="Admin"'} if isinstance(e, AuthError) else None
    return respond_error(e.message, e.status_code, headers)


@app.errorhandler(HTTPException)
def handle_http_error(e):
    headers = dict(e.get_headers())
    headers.pop('Content-Type', None)
    return respond_error(e.name, e.code, headers)


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    logger.exception('Unhandled exception during request %s %s', request.method, request.path)
    return respond_error(str(e) or 'Internal Server Error', 500)


@app.route('/api/cars', methods=['GET'])
def api_cars():
    resource = request.args.get('resource', 'info')
    if resource == 'info':
        cars = garage.list_approved_cars(sheets_db(), object_store())
        return jsonify({'cars': cars, 'carCount': len(cars)})
    if resource == 'names':
        names = garage.list_car_names(sheets_db())
        return jsonify({'names': names, 'nameCount': len(names)})
    if resource == 'lookup':
        return jsonify(garage.lookup_car(sheets_db(), object_store(),
                                         request.args.get('carname'), request.args.get('carkey')))
    raise ValidationError('Unknown resource')


@app.route('/api/garage-enter', methods=['POST'])
def api_garage_enter():
    return jsonify(garage.submit_car(sheets_db(), object_store(), json_body().get('carData')))


@app.route('/api/races', methods=['GET'])
def api_races():
    resource = request.args.get('resource', 'info')
    if resource == 'info':
        bypass = request.args.get('bypassCache') == 'true'
        race_info = races.get_current_race(sheets_db(), race_info_cache, bypass_cache=bypass)
        return jsonify({'raceInfo': race_info}), 200, NO_CACHE_HEADERS
    if resource == 'active':
        return jsonify({'races': races.list_active_races(races.get_all_races(sheets_db()))})
    if resource == 'entries':
        return jsonify(races.get_race_entries(sheets_db(), object_store(),
                                              request.args.get('season'), request.args.get('racenumber')))
    if resource == 'results':
        return jsonify(races.get_race_results(sheets_db(), request.args.get('season'),
                                              request.args.get('racenumber')))
    if resource == 'assets':
        filename, data = races.build_race_assets(sheets_db(), object_store(),
                                                 request.args.get('season'), request.args.get('racenumber'))
        return Response(data, mimetype='application/zip',
                        headers={'Content-Disposition': f'attachment; filename="{filename}"'})
    raise ValidationError('Unknown resource')


@app.route('/api/race-enter', methods=['POST'])
def api_race_enter():
    return jsonify(races.enter_race(sheets_db(), json_body().get('carData'), race_info_cache))


@app.route('/api/car-gen', methods=['GET'])
def api_car_gen():
    kind = request.args.get('type')
    if kind not in ('body', 'wheel'):
        raise ValidationError('Invalid type parameter. Must be "body" or "wheel"')
    seed = request.args.get('seed')
    try:
        seed = int(seed) if seed else time.time_ns()
    except ValueError:
        raise ValidationError('seed must be an integer')

    png = carart.generate_body(seed) if kind == 'body' else carart.generate_wheel(seed)
    return Response(png, mimetype='image/png', headers={'Cache-Control': 'public, max-age=3600'})


@app.route('/api/admin', methods=['GET', 'POST'])
@admin.require_admin_auth
def api_admin():
    resource = request.args.get('resource')
    if resource == 'cars':
        require_method('GET')
        return jsonify({'cars': admin.list_cars(sheets_db(), object_store())})
    if resource == 'car-status':
        require_method('POST')
        body = json_body()
        return jsonify(admin.set_car_status(sheets_db(), body.get('rowIndex'), body.get('status')))
    if resource == 'races':
        require_method('GET')
        return jsonify({'races': admin.list_races(sheets_db())})
    if resource == 'race-image':
        require_method('POST')
        body = json_body()
        return jsonify(admin.attach_race_image(sheets_db(), object_store(), body.get('season'),
                                               body.get('racenumber'), body.get('imageData'),
                                               cache=race_info_cache))
    raise ValidationError('Unknown admin resource')


if __name__ == "__main__":
    # Honor FLASK_DEBUG when running with the builtin server.
    # In production use Gunicorn: `gunicorn rapidracers.app:app` (the block below won't run).
    app.run(host='0.0.0.0', debug=settings.flag('FLASK_DEBUG'))
