"""
Exceptions raised by the Vesta service layer.

Services raise; ``vesta.blueprints.register_error_handlers`` turns each
type into one API error code and status, so views never build error
responses for these cases themselves.

    raise NotFoundError("Report", "rep-123", workspace_id="ws-1")
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """
    Missing record, or a record outside the caller's workspaces (404).

    Both cases read the same to the client so a 404 never reveals that
    another workspace's resource exists.
    """

    def __init__(self, resource: str, resource_id: str | None = None, workspace_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.workspace_id = workspace_id
        parts = [resource]
        if resource_id is not None:
            parts.append(f"'{resource_id}'")
        parts.append("was not found")
        if workspace_id is not None:
            parts.append(f"in workspace {workspace_id}")
        super().__init__(" ".join(parts))


class ValidationError(Exception):
    """Bad input (400); ``details`` maps field names to what was wrong."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = dict(details or {})


class ConflictError(Exception):
    """The change would create a second copy of something unique (409)."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        super().__init__(f"{resource} {field} {value!r} is already taken")
        self.resource, self.field, self.value = resource, field, value


# ── Authentication / authorization ───────────────────────────────────────────


class AuthenticationRequired(Exception):
    """No caller identity could be resolved for a workspace operation (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDenied(Exception):
    """Raised when the caller's workspace role does not grant an action."""

    def __init__(self, user_email: str | None, action: str, role: str | None = None) -> None:
        role_msg = f" as {role}" if role else ""
        super().__init__(
            f"User {user_email} does not have permission for '{action}'{role_msg}"
        )
        self.user_email = user_email
        self.action = action
        self.role = role


class SelfRoleChange(PermissionDenied):
    """A member attempted to change their own role."""

    def __init__(self, user_email: str | None) -> None:
        super().__init__(user_email, "change_own_role")
        self.args = ("You cannot change your own role",)


class LastAdminViolation(Exception):
    """The operation would leave the workspace without an active Administrator."""

    def __init__(self, workspace_id: str) -> None:
        self.workspace_id = workspace_id
        super().__init__("A workspace must keep at least one active Administrator")


class DuplicateMembership(ConflictError):
    """The invited email already belongs to the workspace (active or pending)."""

    def __init__(self, email: str) -> None:
        super().__init__("WorkspaceMember", "email", email)
        self.email = email


class UnregisteredUser(Exception):
    """The invited email has never signed in, so no account exists for it."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"User with email {email} not found. Please ask them to sign up first.")


# ── Report lifecycle ─────────────────────────────────────────────────────────


class TransitionError(Exception):
    """Raised when a report lifecycle operation is not allowed from the current phase.

    Args:
        action: The attempted operation (e.g. "accept_enhancement").
        current: The phase the report is in.
        reason: Optional explanation.
    """

    def __init__(self, action: str, current: str, reason: str = "") -> None:
        self.action = action
        self.current = current
        self.reason = reason
        msg = f"Cannot {action} while report is {current}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# ── Text extraction ──────────────────────────────────────────────────────────


class ExtractionError(Exception):
    """Base class for document text extraction failures."""


class UnsupportedFormat(ExtractionError):
    """The file extension is not one of .pdf, .docx, .txt, .md."""

    def __init__(self, extension: str) -> None:
        self.extension = extension
        if extension == ".doc":
            msg = ("Legacy .doc files are not supported. "
                   "Please save the document as .docx or PDF and upload again.")
        else:
            msg = f"Unsupported file type '{extension or '(none)'}'. Use PDF, DOCX, TXT or MD."
        super().__init__(msg)


class ScannedOrGarbledPdf(ExtractionError):
    """The PDF has no usable text layer (scanned image or broken encoding)."""

    def __init__(self, printable_ratio: float = 0.0) -> None:
        self.printable_ratio = printable_ratio
        super().__init__(
            "Could not read text from this PDF. It may be a scanned image or use "
            "an unsupported font encoding."
        )


class CorruptDocument(ExtractionError):
    """The file could not be opened by its parser."""


class EmptyDocument(ExtractionError):
    """Extraction succeeded but produced no text."""

    def __init__(self, filename: str = "") -> None:
        super().__init__(f"No text could be extracted from {filename or 'the document'}")


# ── Persistence ──────────────────────────────────────────────────────────────


class StoreUnavailable(Exception):
    """The workspace store could not be read or written (503)."""
