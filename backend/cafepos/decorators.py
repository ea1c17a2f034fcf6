# Overview: Request decorators for API routes (actor header, error mapping).

from functools import wraps
from flask import current_app, g, jsonify, request

from .validation import ConflictError, NotFoundError, TransientStorageError, ValidationError

ACTOR_HEADER = "X-Actor-Id"


def with_actor(f):
    """
    Attach the acting user to g.actor_id.

    The value comes from the X-Actor-Id header and is recorded as created_by
    on ledger entries, credit transactions, orders and payments. It is an
    opaque label supplied by the caller and is not validated here.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(ACTOR_HEADER) or "").strip()
        g.actor_id = raw[:64] or None
        return f(*args, **kwargs)

    return decorated_function


def json_errors(action: str):
    """
    Map service exceptions to JSON responses.

    ValidationError -> 400, NotFoundError -> 404, ConflictError -> 409,
    TransientStorageError -> 503, anything else -> 500 (logged).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                body = {"error": str(e)}
                details = getattr(e, "details", None)
                if details:
                    body["details"] = details
                return jsonify(body), 400
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except TransientStorageError as e:
                current_app.logger.warning("%s: storage unavailable: %s", action, e)
                return jsonify({"error": "Storage temporarily unavailable"}), 503
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator


def actor_id():
    return getattr(g, "actor_id", None)
