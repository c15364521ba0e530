"""
Domain exceptions raised by the service layer.

Both derive from ValueError so callers that only distinguish "bad input" from
"unexpected failure" keep working; API endpoints map them to 404 and 403.
"""


class NotFoundError(ValueError):
    """Raised when a referenced record (appointment, invoice, doctor, patient) does not exist."""
    pass


class PermissionDeniedError(ValueError):
    """Raised when the requester's role does not allow the operation."""
    pass
