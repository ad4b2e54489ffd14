"""
Route decorators.

@secret_required guards endpoints meant for an external scheduler rather than
for people: the caller passes ?secret=... and it must equal
BACKGROUND_REFRESH_SECRET exactly.
"""

import logging
from functools import wraps
from flask import jsonify, request

import config

logger = logging.getLogger(__name__)


def secret_required(f):
    """
    Decorator to require the shared refresh secret as a query parameter.

    An unset secret locks the endpoint instead of accepting anything.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = config.BACKGROUND_REFRESH_SECRET
        provided = request.args.get("secret")
        if not expected or provided != expected:
            logger.warning(f"Unauthorized call to {request.path}")
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return decorated_function
