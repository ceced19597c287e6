"""Typed failures raised by the voting core and the admin services.

Every error carries the HTTP status the API answers with and a short
machine readable ``code``; ``app.py`` renders them in one handler.
"""


class EbotoError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, msg=None, details: dict = None):
        super().__init__(msg or self.code)
        self.msg = msg or self.code
        self.details = details or {}

    def to_dict(self):
        out = {"error": self.code, "msg": self.msg}
        if self.details:
            out["details"] = self.details
        return out


class NotFound(EbotoError):
    # election/position/candidate/voter absent or soft-deleted
    status_code = 404
    code = "not_found"


class NotOngoing(EbotoError):
    status_code = 403
    code = "not_ongoing"


class Unauthorized(EbotoError):
    # caller lacks commissioner or voter standing
    status_code = 403
    code = "unauthorized"


class AlreadyVoted(Unauthorized):
    status_code = 409
    code = "already_voted"


class Conflict(EbotoError):
    status_code = 409
    code = "conflict"


class InvalidRequest(EbotoError):
    status_code = 400
    code = "invalid_request"


class InvalidBallot(InvalidRequest):
    code = "invalid_ballot"
