import os
import time
from datetime import datetime, timedelta

from dotenv import load_dotenv
from flask import Flask, g, request, jsonify
from flask_login import login_required
from werkzeug.exceptions import HTTPException

load_dotenv()

from models import db, UserSettings
from schedule import project_week, week_start
from services.access_guard import (
    acting_user_id,
    end_session,
    is_identity_provider_call,
    login_manager,
    scoped,
    start_session,
)
from services.ai_gateway import AdvisorUnavailable, get_suggestion
from services.dashboard_service import local_today, summarize
from services.errors import AppError, NotFound, Unauthenticated, ValidationFailed
from services.validation_service import (
    INBOX_ITEM_FIELDS,
    SETTINGS_FIELDS,
    TASK_FIELDS,
    TIME_BLOCK_FIELDS,
    parse_day_value,
    validate_insert,
    validate_partial,
    validate_user,
)
from storage import storage


def _database_uri():
    uri = os.environ.get('DATABASE_URL', 'sqlite:///planner.db')
    # Hosted Postgres often hands out the legacy scheme
    if uri.startswith('postgres://'):
        uri = 'postgresql://' + uri[len('postgres://'):]
    return uri


app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = _database_uri()
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=7)
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
app.config['API_SHARED_KEY'] = os.environ.get('API_SHARED_KEY')  # identity provider / service callers
app.logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

db.init_app(app)
login_manager.init_app(app)

_schema_bootstrapped = False


@app.before_request
def _bootstrap_schema():
    global _schema_bootstrapped
    if _schema_bootstrapped:
        return
    db.create_all()
    _schema_bootstrapped = True


@app.before_request
def _start_timer():
    g.request_started = time.perf_counter()


@app.after_request
def _log_api_request(response):
    if request.path.startswith('/api'):
        started = g.get('request_started')
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else 0
        app.logger.info("%s %s %s in %sms", request.method, request.path, response.status_code, elapsed_ms)
    return response


# --- Error boundary: the only place exceptions become HTTP responses ---

@app.errorhandler(AppError)
def _handle_app_error(exc):
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.status_code


@app.errorhandler(HTTPException)
def _handle_http_error(exc):
    return jsonify({'message': exc.description or exc.name}), exc.code


@app.errorhandler(Exception)
def _handle_unexpected_error(exc):
    db.session.rollback()
    app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({'message': 'Internal Server Error'}), 500


# --- Helpers ---

def _payload():
    data = request.get_json(silent=True)
    return {} if data is None else data


def _require_valid(result):
    if not result.ok:
        raise ValidationFailed(result.errors)
    return result.values


def _found(row, label):
    if row is None:
        raise NotFound(f'{label} not found')
    return row


def _list_owned(collection):
    user_id = acting_user_id()
    return jsonify([row.to_dict() for row in collection.list(user_id)])


def _create_owned(collection, fields):
    user_id = acting_user_id()
    values = _require_valid(validate_insert(fields, _payload()))
    row = collection.create(scoped(values, user_id))
    return jsonify(row.to_dict()), 201


def _owned_detail(collection, fields, entity_id, label):
    user_id = acting_user_id()

    if request.method == 'DELETE':
        collection.delete(entity_id, user_id)
        return jsonify({'success': True})

    if request.method == 'PATCH':
        values = _require_valid(validate_partial(fields, _payload()))
        row = _found(collection.update(entity_id, user_id, values), label)
        return jsonify(row.to_dict())

    return jsonify(_found(collection.get(entity_id, user_id), label).to_dict())


def _user_settings(user_id):
    settings = storage.get_settings(user_id)
    return settings.to_dict() if settings else UserSettings.defaults_for(user_id)


# --- Auth ---

@app.route('/api/login', methods=['POST'])
def login():
    """Open a session for a user verified by the identity provider (shared key required)."""
    if not is_identity_provider_call():
        raise Unauthenticated()
    values = _require_valid(validate_user(_payload()))
    user = storage.upsert_user(values)
    start_session(user)
    return jsonify(user.to_dict())


@app.route('/api/logout', methods=['POST'])
def logout():
    end_session()
    return jsonify({'success': True})


@app.route('/api/auth/user')
@login_required
def current_user_info():
    user = _found(storage.get_user(acting_user_id()), 'User')
    return jsonify(user.to_dict())


# --- Tasks ---

@app.route('/api/tasks', methods=['GET', 'POST'])
@login_required
def handle_tasks():
    if request.method == 'POST':
        return _create_owned(storage.tasks, TASK_FIELDS)
    return _list_owned(storage.tasks)


@app.route('/api/tasks/<task_id>', methods=['GET', 'PATCH', 'DELETE'])
@login_required
def handle_task(task_id):
    return _owned_detail(storage.tasks, TASK_FIELDS, task_id, 'Task')


# --- Time blocks ---

@app.route('/api/time-blocks', methods=['GET', 'POST'])
@login_required
def handle_time_blocks():
    if request.method == 'POST':
        return _create_owned(storage.time_blocks, TIME_BLOCK_FIELDS)
    return _list_owned(storage.time_blocks)


@app.route('/api/time-blocks/week')
@login_required
def time_blocks_week():
    """Week grid: each day's blocks with hour row, top offset and height fraction."""
    user_id = acting_user_id()
    settings = _user_settings(user_id)

    # Days are bucketed by UTC date; the local date only picks which week is shown
    raw_day = request.args.get('date')
    reference = parse_day_value(raw_day) if raw_day else local_today(settings['timeZone'])
    if reference is None:
        raise ValidationFailed({'date': 'Expected YYYY-MM-DD'})

    raw_start = request.args.get('weekStartsOn')
    if raw_start is None:
        week_start_day = settings['weekStartsOn']
    elif raw_start in ('0', '1'):
        week_start_day = int(raw_start)
    else:
        raise ValidationFailed({'weekStartsOn': 'Must be 0 (Sunday) or 1 (Monday)'})

    first_day = datetime.combine(week_start(reference, week_start_day), datetime.min.time())
    blocks = storage.time_blocks.between(user_id, first_day, first_day + timedelta(days=7))
    columns = project_week(blocks, reference, week_start_day)
    return jsonify({
        'weekStart': first_day.date().isoformat(),
        'weekStartsOn': week_start_day,
        'days': [column.to_dict() for column in columns],
    })


@app.route('/api/time-blocks/<block_id>', methods=['GET', 'PATCH', 'DELETE'])
@login_required
def handle_time_block(block_id):
    return _owned_detail(storage.time_blocks, TIME_BLOCK_FIELDS, block_id, 'Time block')


# --- Inbox ---

@app.route('/api/inbox', methods=['GET', 'POST'])
@login_required
def handle_inbox():
    if request.method == 'POST':
        return _create_owned(storage.inbox_items, INBOX_ITEM_FIELDS)
    return _list_owned(storage.inbox_items)


@app.route('/api/inbox/<item_id>', methods=['GET', 'PATCH', 'DELETE'])
@login_required
def handle_inbox_item(item_id):
    return _owned_detail(storage.inbox_items, INBOX_ITEM_FIELDS, item_id, 'Inbox item')


@app.route('/api/inbox/<item_id>/process', methods=['POST'])
@login_required
def process_inbox_item(item_id):
    user_id = acting_user_id()
    item = _found(storage.inbox_items.update(item_id, user_id, {'is_processed': True}), 'Inbox item')
    return jsonify(item.to_dict())


# --- Settings ---

@app.route('/api/settings', methods=['GET', 'PUT'])
@login_required
def handle_settings():
    user_id = acting_user_id()
    if request.method == 'PUT':
        values = _require_valid(validate_partial(SETTINGS_FIELDS, _payload()))
        settings = storage.upsert_settings(scoped(values, user_id))
        return jsonify(settings.to_dict())
    return jsonify(_user_settings(user_id))


# --- Dashboard ---

@app.route('/api/dashboard')
@login_required
def dashboard():
    user_id = acting_user_id()
    time_zone = _user_settings(user_id)['timeZone']
    return jsonify(summarize(
        storage.tasks.list(user_id),
        storage.time_blocks.list(user_id),
        storage.inbox_items.list(user_id),
        local_today(time_zone),
        time_zone,
    ))


# --- AI ---

@app.route('/api/ai/chat', methods=['POST'])
@login_required
def ai_chat():
    """Productivity advice for a free-text message."""
    user_id = acting_user_id()
    data = _payload()
    message = data.get('message') if isinstance(data, dict) else None
    if not isinstance(message, str) or not message.strip():
        raise ValidationFailed({'message': 'Required'}, 'Message is required')

    open_titles = [t.title for t in storage.tasks.list(user_id) if t.status != 'completed'][:5]
    context = f"The user's open tasks: {'; '.join(open_titles)}." if open_titles else None
    try:
        reply = get_suggestion(message.strip(), context=context, logger=app.logger)
    except AdvisorUnavailable as exc:
        app.logger.warning("AI chat unavailable for user %s", user_id)
        return jsonify({'response': exc.message})
    return jsonify({'response': reply})


if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=os.environ.get('FLASK_DEBUG') == '1')
