"""
townsquare.errors — Domain Error Hierarchy
===========================================

Services raise these; the API layer turns them into explicit JSON error
results (``{"error": kind, "message": ...}``) so nothing escapes the
boundary as an unhandled exception.

Every class carries a machine-readable ``kind`` and the HTTP status the
API maps it to.  ``ConsistencyFault`` is the only kind that signals a
broken invariant rather than a rejected request.
"""

from __future__ import annotations


class TownsquareError(Exception):
    """Base class for all domain errors."""

    kind = "error"
    status_code = 400
    default_message = "Request rejected."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Error kinds
# ---------------------------------------------------------------------------
class NotAuthorized(TownsquareError):
    kind = "not_authorized"
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(TownsquareError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found."


class AlreadyExists(TownsquareError):
    kind = "already_exists"
    status_code = 409
    default_message = "Resource already exists."


class InvalidState(TownsquareError):
    kind = "invalid_state"
    status_code = 409
    default_message = "Operation not allowed in the current state."


class ConsistencyFault(TownsquareError):
    """A counter would go negative, or a counter/edge pair diverged.

    Never caused by normal use.  Raising it rolls back the surrounding
    transaction; operators are alerted through CRITICAL logging.
    """

    kind = "consistency_fault"
    status_code = 500
    default_message = "Internal consistency fault."


# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------
class CommunityNotFound(NotFound):
    def __init__(self, community_id) -> None:
        self.community_id = community_id
        super().__init__(f"Community {community_id} not found")


class PostNotFound(NotFound):
    def __init__(self, post_id) -> None:
        self.post_id = post_id
        super().__init__(f"Post {post_id} not found")


class CommentNotFound(NotFound):
    def __init__(self, comment_id) -> None:
        self.comment_id = comment_id
        super().__init__(f"Comment {comment_id} not found")


class RoundNotFound(NotFound):
    def __init__(self, round_id) -> None:
        self.round_id = round_id
        super().__init__(f"Election round {round_id} not found")


class MembershipNotFound(NotFound):
    default_message = "Not a member of this community."


class FollowNotFound(NotFound):
    default_message = "Not following this user."


class LikeNotFound(NotFound):
    default_message = "Post is not liked."


# ---------------------------------------------------------------------------
# AlreadyExists
# ---------------------------------------------------------------------------
class AlreadyMember(AlreadyExists):
    default_message = "Already a member of this community."


class AlreadyFollowing(AlreadyExists):
    default_message = "Already following this user."


class AlreadyLiked(AlreadyExists):
    default_message = "Post already liked."


class DuplicateVote(AlreadyExists):
    kind = "duplicate_vote"
    default_message = "Voter has already voted in this round."


# ---------------------------------------------------------------------------
# InvalidState
# ---------------------------------------------------------------------------
class RoundNotActive(InvalidState):
    default_message = "Election round is not accepting votes."


class RoundAlreadyActive(InvalidState):
    default_message = "An election round is already active for this community."


class CycleDetected(InvalidState):
    default_message = "Community hierarchy would contain a cycle."


class CannotFollowSelf(InvalidState):
    default_message = "Users cannot follow themselves."
