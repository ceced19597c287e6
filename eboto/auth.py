from flask_jwt_extended import JWTManager, create_access_token, get_jwt, get_jwt_identity, jwt_required, verify_jwt_in_request
from functools import wraps
from flask import jsonify
import datetime

from eboto.admin import get_election, is_commissioner
from eboto.errors import Unauthorized
from eboto.models import get_store

jwt = JWTManager()


# Tokens carry the user id as subject and the email as a claim, the same
# shape the identity provider issues.
def create_session_jwt(user_id, email, expires_hours=8):
    claims = {"email": (email or "").strip().lower()}
    expires = datetime.timedelta(hours=expires_hours)
    return create_access_token(identity=str(user_id), additional_claims=claims, expires_delta=expires)


def current_identity():
    """Return (user_id, email) for the caller, or (None, None) when no token was sent."""
    verify_jwt_in_request(optional=True)
    user_id = get_jwt_identity()
    if not user_id:
        return None, None
    return user_id, (get_jwt() or {}).get("email")


def commissioner_required(fn):
    """Only commissioners of the election named by the ``election_id`` route argument get through."""
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        store = get_store()
        user_id = get_jwt_identity()
        election = get_election(store, kwargs.get("election_id"))
        if not is_commissioner(store, election["_id"], user_id):
            store.log_audit("unauthorized_access_attempt", user_id or "unknown", {
                "endpoint": fn.__name__,
                "election_id": str(election["_id"]),
            })
            raise Unauthorized("you are not a commissioner of this election")
        return fn(*args, **kwargs)
    return wrapper


@jwt.expired_token_loader
def expired_token_callback(jwt_header, jwt_payload):
    return jsonify({"error": "token_expired", "msg": "Your session has expired. Please login again."}), 401

@jwt.invalid_token_loader
def invalid_token_callback(error_string):
    return jsonify({"error": "invalid_token", "msg": error_string}), 401

@jwt.unauthorized_loader
def missing_token_callback(error_string):
    return jsonify({"error": "missing_token", "msg": error_string}), 401

@jwt.revoked_token_loader
def revoked_token_callback(jwt_header, jwt_payload):
    return jsonify({"error": "revoked_token", "msg": "Token has been revoked"}), 401
