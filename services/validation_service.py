import re
from collections import namedtuple
from datetime import date, datetime, time, timezone

import pytz

TASK_STATUSES = ('todo', 'in_progress', 'completed')
TASK_PRIORITIES = ('low', 'medium', 'high')
WEEK_START_DAYS = (0, 1)  # 0 = Sunday, 1 = Monday

# Never accepted from a client payload; ownership and bookkeeping are server-side.
PROTECTED_KEYS = ('id', 'userId', 'user_id', 'createdAt', 'created_at', 'updatedAt', 'updated_at')

_MISSING = object()
_HEX_COLOR = re.compile(r'^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


class ValidationResult(namedtuple('ValidationResult', ['values', 'errors'])):
    """Outcome of validating a payload: clean column values or per-field errors."""
    __slots__ = ()

    @property
    def ok(self):
        return not self.errors


Field = namedtuple('Field', ['key', 'attr', 'parse', 'required'])


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_time_str(val):
    """Parse 24h or am/pm strings into a time object; return None on failure."""
    if not val:
        return None
    if isinstance(val, time):
        return val
    s = str(val).strip().lower().replace(" ", "")

    pattern = r"^(?P<hour>\d{1,2})(:(?P<minute>\d{1,2}))?(:(?P<second>\d{1,2}))?(?P<ampm>a|p|am|pm)?$"
    m = re.match(pattern, s)
    if not m:
        return None
    try:
        hour = int(m.group("hour"))
        minute = int(m.group("minute") or 0)
        ampm = m.group("ampm")
        if m.group("second") is not None:
            sec_val = int(m.group("second"))
            if not (0 <= sec_val <= 59):
                return None
        if ampm:
            if ampm in ("p", "pm") and hour != 12:
                hour += 12
            if ampm in ("a", "am") and hour == 12:
                hour = 0
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            return None
        return time(hour=hour, minute=minute)
    except (TypeError, ValueError):
        return None


def parse_day_value(raw):
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return datetime.strptime(str(raw), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def parse_timestamp(raw):
    """ISO-8601 string (or datetime) to a naive UTC datetime; None on failure."""
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# --- Field parsers: return the clean value or raise ValueError(message) ---

def _text(value):
    if not isinstance(value, str):
        raise ValueError('Expected a string')
    return value


def _required_text(value):
    text = _text(value) if value is not None else ''
    if not text.strip():
        raise ValueError('Required')
    return text


def _optional_text(value):
    if value is None:
        return None
    return _text(value)


def _choice(allowed):
    def parse(value):
        if value not in allowed:
            raise ValueError(f"Must be one of: {', '.join(allowed)}")
        return value
    return parse


def _positive_int(value):
    if isinstance(value, bool):
        raise ValueError('Expected a positive integer')
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise ValueError('Expected a positive integer')
    return value


def _optional_positive_int(value):
    if value is None:
        return None
    return _positive_int(value)


def _timestamp(value):
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError('Expected an ISO-8601 datetime')
    return parsed


def _optional_timestamp(value):
    if value is None or value == '':
        return None
    return _timestamp(value)


def _flag(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false', '1', '0', 'yes', 'no', 'on', 'off'):
        return parse_bool(value)
    raise ValueError('Expected a boolean')


def _time_of_day(value):
    parsed = parse_time_str(value) if isinstance(value, (str, time)) else None
    if parsed is None:
        raise ValueError('Expected a time of day (HH:MM)')
    return parsed.strftime('%H:%M')


def _hex_color(value):
    if not isinstance(value, str) or not _HEX_COLOR.match(value.strip()):
        raise ValueError('Expected a hex color such as #414A37')
    return value.strip()


def _time_zone(value):
    if not isinstance(value, str) or value.strip() not in pytz.all_timezones_set:
        raise ValueError('Unknown time zone')
    return value.strip()


def _week_start_day(value):
    if isinstance(value, bool) or value not in WEEK_START_DAYS:
        raise ValueError('Must be 0 (Sunday) or 1 (Monday)')
    return int(value)


def _optional_reference(value):
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValueError('Expected an id string')
    return value.strip()


def _identifier(value):
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    return _required_text(value)


def _optional_email(value):
    cleaned = (_optional_text(value) or '').strip() or None
    if cleaned is not None and '@' not in cleaned:
        raise ValueError('Expected an email address')
    return cleaned


TASK_FIELDS = (
    Field('title', 'title', _required_text, True),
    Field('description', 'description', _optional_text, False),
    Field('status', 'status', _choice(TASK_STATUSES), False),
    Field('priority', 'priority', _choice(TASK_PRIORITIES), False),
    Field('estimatedMinutes', 'estimated_minutes', _optional_positive_int, False),
    Field('dueDate', 'due_date', _optional_timestamp, False),
)

TIME_BLOCK_FIELDS = (
    Field('taskId', 'task_id', _optional_reference, False),
    Field('title', 'title', _required_text, True),
    Field('description', 'description', _optional_text, False),
    Field('startTime', 'start_time', _timestamp, True),
    Field('endTime', 'end_time', _timestamp, True),
    Field('color', 'color', _hex_color, False),
    Field('isAllDay', 'is_all_day', _flag, False),
)

INBOX_ITEM_FIELDS = (
    Field('content', 'content', _required_text, True),
    Field('notes', 'notes', _optional_text, False),
    Field('isProcessed', 'is_processed', _flag, False),
)

SETTINGS_FIELDS = (
    Field('workStartTime', 'work_start_time', _time_of_day, False),
    Field('workEndTime', 'work_end_time', _time_of_day, False),
    Field('defaultTaskDuration', 'default_task_duration', _positive_int, False),
    Field('timeZone', 'time_zone', _time_zone, False),
    Field('weekStartsOn', 'week_starts_on', _week_start_day, False),
    Field('enableNotifications', 'enable_notifications', _flag, False),
)

USER_FIELDS = (
    Field('id', 'id', _identifier, True),
    Field('email', 'email', _optional_email, False),
    Field('firstName', 'first_name', _optional_text, False),
    Field('lastName', 'last_name', _optional_text, False),
    Field('profileImageUrl', 'profile_image_url', _optional_text, False),
)


def _lookup(data, field):
    if field.key in data:
        return data[field.key]
    if field.attr in data:
        return data[field.attr]
    return _MISSING


def _validate(fields, data, partial, protected=PROTECTED_KEYS):
    if not isinstance(data, dict):
        return ValidationResult({}, {'body': 'Expected a JSON object'})
    values = {}
    errors = {}
    for field in fields:
        if field.key in protected:
            continue
        raw = _lookup(data, field)
        if raw is _MISSING:
            if field.required and not partial:
                errors[field.key] = 'Required'
            continue
        try:
            values[field.attr] = field.parse(raw)
        except ValueError as exc:
            errors[field.key] = str(exc)
    if errors:
        return ValidationResult({}, errors)
    return ValidationResult(values, {})


def validate_insert(fields, data):
    """Validate a full insert payload; required fields must be present."""
    return _validate(fields, data, partial=False)


def validate_partial(fields, data):
    """Validate only the fields present in an update payload."""
    return _validate(fields, data, partial=True)


def validate_user(data):
    """User claims come from the identity provider, so the id is accepted here."""
    return _validate(USER_FIELDS, data, partial=False, protected=())


def missing_required(fields, values):
    """Keys of required fields absent from already-parsed column values."""
    return [f.key for f in fields if f.required and values.get(f.attr) is None]
