"""RFC 9457 Problem Details exception hierarchy.

All API errors extend ProblemDetailError and are converted to
application/problem+json responses by the exception handler middleware.
"""

from shared.config import settings


def problem_type(slug: str) -> str:
    return f"{settings.problem_type_base}/{slug}"


class ProblemDetailError(Exception):
    def __init__(
        self,
        type_uri: str,
        title: str,
        status: int,
        detail: str,
        violations: list[dict] | None = None,
    ):
        self.type_uri = type_uri
        self.title = title
        self.status = status
        self.detail = detail
        self.violations = violations
        super().__init__(detail)


class ValidationError(ProblemDetailError):
    def __init__(self, violations: list[dict]):
        super().__init__(
            type_uri=problem_type("validation-error"),
            title="Validation Error",
            status=422,
            detail=f"Request body contains {len(violations)} validation error(s)",
            violations=violations,
        )


class NotFoundError(ProblemDetailError):
    def __init__(self, detail: str):
        super().__init__(
            type_uri=problem_type("not-found"),
            title="Not Found",
            status=404,
            detail=detail,
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User '{user_id}' not found")


class DuplicateSleepEntryError(ProblemDetailError):
    def __init__(self):
        super().__init__(
            type_uri=problem_type("duplicate-sleep-entry"),
            title="Duplicate Sleep Entry",
            status=409,
            detail="Duplicate sleep entry already exists.",
        )


class AccountExistsError(ProblemDetailError):
    def __init__(self, field: str):
        label = "User ID" if field == "user_id" else "Email"
        super().__init__(
            type_uri=problem_type("account-exists"),
            title="Account Already Exists",
            status=422,
            detail=f"{label} already exists",
            violations=[{"field": field, "message": f"{label} already exists", "constraint": "unique"}],
        )


class AuthenticationError(ProblemDetailError):
    def __init__(self, detail: str):
        super().__init__(
            type_uri=problem_type("unauthorized"),
            title="Unauthorized",
            status=401,
            detail=detail,
        )


class ForbiddenError(ProblemDetailError):
    def __init__(self, detail: str):
        super().__init__(
            type_uri=problem_type("forbidden"),
            title="Forbidden",
            status=403,
            detail=detail,
        )


class InvalidTimezoneError(ProblemDetailError):
    def __init__(self, tz: str):
        super().__init__(
            type_uri=problem_type("invalid-timezone"),
            title="Invalid Time Zone",
            status=400,
            detail=f"Parameter 'tz' ({tz}) is not a known IANA time zone",
        )
