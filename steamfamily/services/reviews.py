"""
Review submission.

A ReviewSubmission holds one in-progress review (rating + body for a tool)
and walks it through IDLE -> VALIDATING -> SUBMITTING -> SUCCEEDED | FAILED.

Checks run in a fixed order and the first failure wins:
1. signed in
2. rating picked (1-5)
3. body at least 10 characters
4. body at most 2000 characters
5. body has no URL

Only then is the body passed through the content filter and written, as a
single insert. A failed submission keeps its rating and body so the user can
fix them; a successful one resets both. Nothing is retried automatically.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from flask import current_app, has_app_context

from steamfamily.models import REVIEW_MAX_LENGTH, REVIEW_MIN_LENGTH, Review
from steamfamily.services import supabase_client
from steamfamily.services.content_filter import ContentFilter
from steamfamily.utils.errors import BackendError, ValidationError

# Short reasons, in check order
REASON_NOT_AUTHENTICATED = "not authenticated"
REASON_RATING_REQUIRED = "rating required"
REASON_TOO_SHORT = "too short"
REASON_TOO_LONG = "too long"
REASON_CONTAINS_URL = "contains URL"
REASON_IN_PROGRESS = "in progress"

MESSAGES = {
    REASON_NOT_AUTHENTICATED: "You must be signed in to post a review.",
    REASON_RATING_REQUIRED: "Please select a rating from 1 to 5 stars.",
    REASON_TOO_SHORT: f"Review must be at least {REVIEW_MIN_LENGTH} characters.",
    REASON_TOO_LONG: f"Review must be at most {REVIEW_MAX_LENGTH} characters.",
    REASON_CONTAINS_URL: "Reviews cannot contain URLs or links.",
    REASON_IN_PROGRESS: "Your review is already being posted.",
}


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def coerce_rating(value: Any) -> int:
    """
    Read a star rating from form/JSON input. Anything that is not a whole
    number (including booleans) counts as "not selected", i.e. 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else 0
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


def _fail(reason: str) -> ValidationError:
    return ValidationError(reason, MESSAGES[reason])


def validate_review(user: Optional[Mapping[str, Any]], rating: Any, body: str, content_filter: ContentFilter) -> None:
    """Run the ordered checks. Raises ValidationError for the first that fails."""
    if not user or not user.get("id"):
        raise _fail(REASON_NOT_AUTHENTICATED)

    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise _fail(REASON_RATING_REQUIRED)

    body = body or ""
    if len(body) < REVIEW_MIN_LENGTH:
        raise _fail(REASON_TOO_SHORT)

    if len(body) > REVIEW_MAX_LENGTH:
        raise _fail(REASON_TOO_LONG)

    if content_filter.contains_url(body):
        raise _fail(REASON_CONTAINS_URL)


class ReviewSubmission:
    """One review being written for one tool."""

    def __init__(self, tool_id: str, rating: int = 0, body: str = ""):
        self.tool_id = tool_id
        self.rating = rating
        self.body = body
        self.state = SubmissionState.IDLE
        self.error: Optional[str] = None
        self.reason: Optional[str] = None
        self.review: Optional[Review] = None

    @property
    def in_flight(self) -> bool:
        return self.state in (SubmissionState.VALIDATING, SubmissionState.SUBMITTING)

    def reset(self) -> None:
        """Clear the form after a successful post."""
        self.rating = 0
        self.body = ""

    def submit(self, user: Optional[Mapping[str, Any]], content_filter: ContentFilter) -> Review:
        """
        Validate, filter and write the review.

        Returns the stored Review. Raises ValidationError or BackendError; in
        both cases state is FAILED and the rating/body are left untouched.
        """
        if self.in_flight:
            raise _fail(REASON_IN_PROGRESS)

        self.error = None
        self.reason = None
        self.state = SubmissionState.VALIDATING
        try:
            validate_review(user, self.rating, self.body, content_filter)
        except ValidationError as e:
            self._failed(str(e), e.reason)
            if has_app_context():
                current_app.logger.info(f"Review for tool {self.tool_id} rejected: {e.reason}")
            raise

        self.state = SubmissionState.SUBMITTING
        try:
            review = supabase_client.insert_review(
                self.tool_id,
                user["id"],
                self.rating,
                content_filter.sanitize(self.body),
            )
        except BackendError as e:
            self._failed(str(e), e.code)
            raise

        self.review = review
        self.state = SubmissionState.SUCCEEDED
        self.reset()
        return review

    def _failed(self, message: str, reason: Optional[str]) -> None:
        self.state = SubmissionState.FAILED
        self.error = message
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Form state as returned to the client."""
        data = {
            "tool_id": self.tool_id,
            "state": self.state.value,
            "rating": self.rating,
            "body": self.body,
        }
        if self.error:
            data["error"] = self.error
            data["reason"] = self.reason
        if self.review:
            data["review"] = self.review.model_dump(mode="json")
        return data
