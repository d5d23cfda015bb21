"""Error taxonomy shared by the store, the access guard and the HTTP boundary."""


class AppError(Exception):
    """Base for errors that carry an HTTP status and a user-safe message."""
    status_code = 500
    message = 'Internal Server Error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {'message': self.message}


class Unauthenticated(AppError):
    status_code = 401
    message = 'Unauthorized'


class ValidationFailed(AppError):
    status_code = 400
    message = 'Invalid request payload'

    def __init__(self, errors, message=None):
        super().__init__(message)
        self.errors = dict(errors or {})

    def to_dict(self):
        return {'message': self.message, 'errors': self.errors}


class NotFound(AppError):
    status_code = 404
    message = 'Not found'


class ServiceUnavailable(AppError):
    status_code = 503
    message = 'Service unavailable'


class UpstreamError(AppError):
    status_code = 502
    message = 'Upstream service failed'
