"""Entity store: per-user CRUD over the planner models.

Every read and mutation takes the owning user id explicitly and filters on it,
so a row belonging to another user behaves exactly like a missing row.
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db, utcnow, User, UserSettings, Task, TimeBlock, InboxItem
from services.errors import ValidationFailed
from services.validation_service import (
    INBOX_ITEM_FIELDS,
    TASK_FIELDS,
    TIME_BLOCK_FIELDS,
    missing_required,
)

# Columns a caller can never write through update/upsert.
IMMUTABLE_ATTRS = ('id', 'user_id', 'created_at', 'updated_at')


def _writable(values):
    return {k: v for k, v in (values or {}).items() if k not in IMMUTABLE_ATTRS}


class OwnedCollection:
    """CRUD for one owned entity kind."""

    def __init__(self, model, fields, order_by):
        self.model = model
        self.fields = fields
        self._order_by = order_by

    @property
    def kind(self):
        return self.model.__tablename__

    def list(self, user_id):
        return self.model.query.filter_by(user_id=user_id).order_by(*self._order_by()).all()

    def get(self, entity_id, user_id):
        if not entity_id or not user_id:
            return None
        return self.model.query.filter_by(id=entity_id, user_id=user_id).first()

    def create(self, values):
        user_id = values.get('user_id')
        missing = missing_required(self.fields, values)
        if not user_id:
            missing.append('userId')
        if missing:
            raise ValidationFailed({key: 'Required' for key in missing})
        self._check_references(values, user_id)

        now = utcnow()
        row = self.model(**_writable(values), user_id=user_id, created_at=now, updated_at=now)
        db.session.add(row)
        db.session.commit()
        current_app.logger.info("Created %s %s for user %s", self.kind, row.id, user_id)
        return row

    def update(self, entity_id, user_id, values):
        row = self.get(entity_id, user_id)
        if row is None:
            return None
        changes = _writable(values)
        self._check_references(changes, user_id)
        for attr, value in changes.items():
            setattr(row, attr, value)
        row.updated_at = utcnow()
        db.session.commit()
        return row

    def delete(self, entity_id, user_id):
        row = self.get(entity_id, user_id)
        if row is None:
            return
        db.session.delete(row)
        db.session.commit()
        current_app.logger.info("Deleted %s %s for user %s", self.kind, entity_id, user_id)

    def _check_references(self, values, user_id):
        pass


class TimeBlockCollection(OwnedCollection):

    def between(self, user_id, start, end):
        """Blocks whose start instant lies in [start, end), ascending by start."""
        return TimeBlock.query.filter(
            TimeBlock.user_id == user_id,
            TimeBlock.start_time >= start,
            TimeBlock.start_time < end,
        ).order_by(TimeBlock.start_time.asc()).all()

    def _check_references(self, values, user_id):
        # A block may only link to a task of the same owner
        task_id = values.get('task_id')
        if task_id and not Task.query.filter_by(id=task_id, user_id=user_id).first():
            raise ValidationFailed({'taskId': 'Task not found'})


class DatabaseStorage:

    def __init__(self):
        self.tasks = OwnedCollection(Task, TASK_FIELDS, lambda: (Task.created_at.desc(),))
        self.time_blocks = TimeBlockCollection(TimeBlock, TIME_BLOCK_FIELDS, lambda: (TimeBlock.start_time.asc(),))
        self.inbox_items = OwnedCollection(InboxItem, INBOX_ITEM_FIELDS, lambda: (InboxItem.created_at.desc(),))

    # User operations

    def get_user(self, user_id):
        if not user_id:
            return None
        return db.session.get(User, user_id)

    def upsert_user(self, values):
        """Insert the user, or overwrite the provided fields when the id exists."""
        user_id = values.get('id')
        if not user_id:
            raise ValidationFailed({'id': 'Required'})
        changes = _writable(values)
        user = db.session.get(User, user_id)
        if user is None:
            now = utcnow()
            user = User(id=user_id, created_at=now, updated_at=now, **changes)
            db.session.add(user)
            try:
                db.session.commit()
                return user
            except IntegrityError:
                # Inserted concurrently; fall through and apply as an update
                db.session.rollback()
                user = db.session.get(User, user_id)
                if user is None:
                    raise ValidationFailed({'email': 'Already in use'})
        for attr, value in changes.items():
            setattr(user, attr, value)
        user.updated_at = utcnow()
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationFailed({'email': 'Already in use'})
        return user

    # User settings operations

    def get_settings(self, user_id):
        if not user_id:
            return None
        return UserSettings.query.filter_by(user_id=user_id).first()

    def upsert_settings(self, values):
        """Insert the user's settings row, or overwrite the provided fields of the existing one."""
        user_id = values.get('user_id')
        if not user_id:
            raise ValidationFailed({'userId': 'Required'})
        changes = _writable(values)
        settings = self.get_settings(user_id)
        if settings is None:
            now = utcnow()
            settings = UserSettings(user_id=user_id, created_at=now, updated_at=now, **changes)
            db.session.add(settings)
            try:
                db.session.commit()
                return settings
            except IntegrityError:
                db.session.rollback()
                settings = self.get_settings(user_id)
                if settings is None:
                    raise
        for attr, value in changes.items():
            setattr(settings, attr, value)
        settings.updated_at = utcnow()
        db.session.commit()
        return settings


storage = DatabaseStorage()
