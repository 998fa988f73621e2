"""
Authorization decorators for API routes.

The caller is resolved from the X-API-Key header by the login manager's
request loader. A missing caller is answered with 401, a caller without
the required claim with 403.
"""
from functools import wraps

from flask_login import current_user

from app.utils.error_handlers import api_error_response


def require_user(f):
    @wraps(f)
    async def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return api_error_response('API key required', 401, 'UNAUTHORIZED')
        return await f(*args, **kwargs)
    return decorated_function


def require_moderator(f):
    """Moderators and admins only"""
    @wraps(f)
    async def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return api_error_response('API key required', 401, 'UNAUTHORIZED')
        if not current_user.can_moderate:
            return api_error_response('Moderator access required', 403, 'FORBIDDEN')
        return await f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    @wraps(f)
    async def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return api_error_response('API key required', 401, 'UNAUTHORIZED')
        if not current_user.is_admin:
            return api_error_response('Admin access required', 403, 'FORBIDDEN')
        return await f(*args, **kwargs)
    return decorated_function
