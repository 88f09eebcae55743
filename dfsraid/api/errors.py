"""Error handling for the RAID HTTP API."""

import logging
from functools import wraps
from flask import jsonify

from dfsraid.storage.errors import RaidError, RecoveryError, UnrecoverableStripeError

logger = logging.getLogger(__name__)


class InvalidRequest(RaidError):
    """Malformed request parameters."""
    pass


def format_error_response(code, message, status):
    return jsonify({'error': {'code': code, 'message': message}}), status


def handle_raid_errors(f):
    """Decorator mapping RAID errors to JSON error responses."""
    @wraps(f)
    def wrapped(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except InvalidRequest as e:
            logger.error(f"Invalid request in {f.__name__}: {str(e)}")
            return format_error_response('InvalidRequest', str(e), 400)
        except UnrecoverableStripeError as e:
            logger.error(f"Unrecoverable stripe in {f.__name__}: {str(e)}")
            return format_error_response('UnrecoverableStripe', str(e), 422)
        except RecoveryError as e:
            logger.error(f"Recovery error in {f.__name__}: {str(e)}")
            return format_error_response('RecoveryError', str(e), 400)
        except RaidError as e:
            logger.error(f"RAID error in {f.__name__}: {str(e)}")
            return format_error_response(type(e).__name__, str(e), 500)
        except Exception as e:
            logger.error(f"Unexpected error in {f.__name__}: {str(e)}")
            return format_error_response('InternalError', 'Internal server error', 500)
    return wrapped
