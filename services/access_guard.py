"""Resolve the acting user for a request and scope store calls to it.

Ownership equality is the whole access policy: there are no roles or sharing.
The user id always comes from the verified identity, never from the payload.
"""

import hmac

from flask import current_app, request, session
from flask_login import LoginManager, current_user, login_user, logout_user

from services.errors import Unauthenticated
from storage import storage

login_manager = LoginManager()


def _shared_key_matches(candidate):
    shared_key = current_app.config.get('API_SHARED_KEY')
    if not shared_key or not candidate:
        return False
    return hmac.compare_digest(str(candidate), str(shared_key))


def is_identity_provider_call():
    """True when the caller presented the shared key (identity provider / service)."""
    return _shared_key_matches(request.headers.get('X-API-Key'))


@login_manager.user_loader
def _load_session_user(user_id):
    return storage.get_user(user_id)


@login_manager.request_loader
def _load_header_user(req):
    """Header-based auth for service callers: shared key + X-User-Id."""
    api_user_id = req.headers.get('X-User-Id')
    if not api_user_id or not _shared_key_matches(req.headers.get('X-API-Key')):
        return None
    return storage.get_user(api_user_id)


@login_manager.unauthorized_handler
def _unauthorized():
    raise Unauthenticated()


def acting_user_id():
    """Verified id of the requesting user; raises Unauthenticated when there is none."""
    if not current_user or not current_user.is_authenticated:
        raise Unauthenticated()
    return current_user.id


def scoped(values, user_id):
    """Copy of validated values owned by user_id, whatever the client sent."""
    owned = {k: v for k, v in (values or {}).items() if k not in ('user_id', 'userId')}
    owned['user_id'] = user_id
    return owned


def start_session(user):
    login_user(user, remember=False)
    session.permanent = True
    current_app.logger.info("Session started for user %s", user.id)


def end_session():
    user_id = current_user.id if current_user and current_user.is_authenticated else None
    logout_user()
    if user_id:
        current_app.logger.info("Session ended for user %s", user_id)
