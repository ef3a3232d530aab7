"""Error taxonomy shared by the assembler, the mutations and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass


class FamilyTreeError(Exception):
    """Base class for every domain failure."""


class NotFound(FamilyTreeError):
    def __init__(self, member_id: str, message: str | None = None) -> None:
        self.member_id = member_id
        super().__init__(message or f"member not found: {member_id}")


class RootInvariantViolation(FamilyTreeError):
    """Zero or more than one member qualifies as the tree root."""

    def __init__(self, message: str, *, candidates: tuple[str, ...] = ()) -> None:
        self.candidates = candidates
        super().__init__(message)


class ValidationError(FamilyTreeError):
    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class TransportError(FamilyTreeError):
    """A collaborator was unreachable or answered with a non-success status.

    ``operation`` is the verb the user triggered ("add", "link", "fetch", ...);
    ``str(exc)`` is the notification shown to the user.
    """

    _PLURAL_OPS = frozenset({"link", "unlink"})
    _FIXED = {
        "fetch": "Failed to fetch family tree",
        "bio": "Failed to generate bio",
        "crop": "Failed to crop photo",
    }

    def __init__(self, operation: str, *, status_code: int | None = None, detail: str | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.user_message())

    def user_message(self) -> str:
        if self.operation in self._FIXED:
            return self._FIXED[self.operation]
        noun = "members" if self.operation in self._PLURAL_OPS else "member"
        return f"Failed to {self.operation} {noun}"


@dataclass(frozen=True)
class Orphan:
    """A record that could not be attached to the assembled tree.

    Not raised: the assembler collects these and logs them at warning level.
    ``reason`` is one of ``missing_parent``, ``detached`` (an ancestor is an
    orphan or the chain never reaches the root), ``cycle`` or ``missing_spouse``.
    """

    member_id: str
    reference: str | None
    reason: str
