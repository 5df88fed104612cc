"""
Governance error taxonomy.

Every refusal raised by the governance core carries a stable ``code`` and the
HTTP status the routes layer answers with. Nothing here is retried
automatically: stale and conflicting requests must be resubmitted.
"""


class GovernanceError(Exception):
    """Base class for all governance failures."""

    code = 'governance_error'
    http_status = 400

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(GovernanceError):
    """Missing reason, empty proposed diff, or a failing field constraint."""

    code = 'validation_error'
    http_status = 400


class AuthorizationError(GovernanceError):
    """Role mismatch, unknown role, or a requester deciding their own request."""

    code = 'authorization_error'
    http_status = 403


class NotFoundError(GovernanceError):
    code = 'not_found'
    http_status = 404


class ConflictError(GovernanceError):
    """A pending request already exists for the same entity and action."""

    code = 'conflict'
    http_status = 409


class InvalidStateError(GovernanceError):
    """Decision on a non-pending request, or restore of a live entity."""

    code = 'invalid_state'
    http_status = 409


class StaleRequestError(GovernanceError):
    """The entity changed after the request snapshot was taken."""

    code = 'stale_request'
    http_status = 409
