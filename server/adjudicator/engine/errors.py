class AdjudicationError(Exception):
    """Base error for resolution and appeal failures.

    Carries the same `{"code", "description"}` body the web layer returns for
    auth failures, plus the HTTP status it maps to.
    """

    code = "adjudication_error"
    status_code = 400

    def __init__(self, description: str, status_code: int = None):
        super().__init__(description)
        self.description = description
        if status_code is not None:
            self.status_code = status_code

    @property
    def error(self) -> dict:
        return {"code": self.code, "description": self.description}


class ProviderNotConfigured(AdjudicationError):
    code = "provider_not_configured"
    status_code = 503


class DebateNotFound(AdjudicationError):
    code = "debate_not_found"
    status_code = 404


class UserNotFound(AdjudicationError):
    code = "user_not_found"
    status_code = 404


class InvalidState(AdjudicationError):
    code = "invalid_state"
    status_code = 409


class AlreadyResolved(AdjudicationError):
    code = "already_resolved"
    status_code = 409


class MissingOpponent(AdjudicationError):
    code = "missing_opponent"
    status_code = 409


class NoJudgesAvailable(AdjudicationError):
    code = "no_judges_available"
    status_code = 503


class AppealNotAllowed(AdjudicationError):
    code = "appeal_not_allowed"
    status_code = 400


class VerdictsUnavailable(AdjudicationError):
    code = "verdicts_unavailable"
    status_code = 502


class AppealVerdictsUnavailable(VerdictsUnavailable):
    code = "appeal_verdicts_unavailable"
