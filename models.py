import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()

DEFAULT_BLOCK_COLOR = '#414A37'

SETTINGS_DEFAULTS = {
    'work_start_time': '09:00',
    'work_end_time': '17:00',
    'default_task_duration': 60,
    'time_zone': 'UTC',
    'week_starts_on': 1,
    'enable_notifications': True,
}


def utcnow():
    """Naive UTC timestamp, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    return str(uuid.uuid4())


def _iso(value):
    # Stored values are naive UTC
    return value.isoformat() + 'Z' if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    # Supplied by the identity provider, never generated here
    id = db.Column(db.String(255), primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    first_name = db.Column(db.String(255), nullable=True)
    last_name = db.Column(db.String(255), nullable=True)
    profile_image_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    # Relationships
    tasks = db.relationship('Task', backref='owner', lazy=True, cascade="all, delete")
    time_blocks = db.relationship('TimeBlock', backref='owner', lazy=True, cascade="all, delete")
    inbox_items = db.relationship('InboxItem', backref='owner', lazy=True, cascade="all, delete")
    settings = db.relationship('UserSettings', backref='user', lazy=True, uselist=False, cascade="all, delete")

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'profileImageUrl': self.profile_image_url,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class UserSettings(db.Model):
    """Per-user planner preferences. One row per user."""
    __tablename__ = 'user_settings'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(255), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    work_start_time = db.Column(db.String(5), default=SETTINGS_DEFAULTS['work_start_time'])  # local HH:MM
    work_end_time = db.Column(db.String(5), default=SETTINGS_DEFAULTS['work_end_time'])
    default_task_duration = db.Column(db.Integer, default=SETTINGS_DEFAULTS['default_task_duration'])  # minutes
    time_zone = db.Column(db.String(64), default=SETTINGS_DEFAULTS['time_zone'])
    week_starts_on = db.Column(db.Integer, default=SETTINGS_DEFAULTS['week_starts_on'])  # 0 = Sunday, 1 = Monday
    enable_notifications = db.Column(db.Boolean, default=SETTINGS_DEFAULTS['enable_notifications'])
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    @staticmethod
    def defaults_for(user_id):
        """Unsaved settings payload used before the user has stored any."""
        return UserSettings(user_id=user_id, **SETTINGS_DEFAULTS).to_dict()

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'workStartTime': self.work_start_time,
            'workEndTime': self.work_end_time,
            'defaultTaskDuration': self.default_task_duration,
            'timeZone': self.time_zone,
            'weekStartsOn': self.week_starts_on,
            'enableNotifications': self.enable_notifications,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(255), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='todo')  # todo | in_progress | completed
    priority = db.Column(db.String(10), nullable=False, default='medium')  # low | medium | high
    estimated_minutes = db.Column(db.Integer, nullable=True, default=60)
    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    # Blocks scheduled for this task go with it
    time_blocks = db.relationship(
        'TimeBlock',
        backref='task',
        lazy=True,
        cascade="all, delete",
    )

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'estimatedMinutes': self.estimated_minutes,
            'dueDate': _iso(self.due_date),
            'completedAt': _iso(self.completed_at),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class TimeBlock(db.Model):
    """
    Scheduled interval on the calendar. Start/end are absolute naive UTC
    timestamps; end before start is stored as given.
    """
    __tablename__ = 'time_blocks'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(255), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    task_id = db.Column(db.String(36), db.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=True)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)
    color = db.Column(db.String(9), default=DEFAULT_BLOCK_COLOR)
    is_all_day = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    def duration_minutes(self):
        return (self.end_time - self.start_time).total_seconds() / 60.0

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'taskId': self.task_id,
            'title': self.title,
            'description': self.description,
            'startTime': _iso(self.start_time),
            'endTime': _iso(self.end_time),
            'color': self.color,
            'isAllDay': self.is_all_day,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class InboxItem(db.Model):
    """Quick-capture entry waiting to be turned into a task or discarded."""
    __tablename__ = 'inbox_items'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(255), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    is_processed = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'content': self.content,
            'notes': self.notes,
            'isProcessed': self.is_processed,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
