"""Middleware for the logged-in customer."""
from functools import wraps
from flask import session, g, jsonify
from storefront.database import get_session
from storefront.models import AppUser


def load_user():
    """
    Load current user into g (Flask's per-request global).

    Called before each request. Sets g.user and g.user_id if authenticated.
    """
    g.user = None
    g.user_id = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
            if user:
                g.user = user
                g.user_id = user.id
            else:
                session.pop('user_id', None)
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        from flask import current_app
        current_app.logger.error(f"Error in load_user: {e}")


def require_login(f):
    """
    Decorator: Require user to be logged in.

    Returns a JSON 401 when no active user is loaded.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Login required'}), 401
        return f(*args, **kwargs)

    return decorated_function
