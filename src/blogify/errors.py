"""
Error taxonomy shared by the store, auth, social and assistant layers.

Each class carries the HTTP status the error middleware answers with. Callers
build instances through the static factories so every message starts with a
stable error code that can be grepped for in logs and Sentry.
"""


class BlogifyError(Exception):
    status: int = 500


class ValidationFailed(BlogifyError):
    """Bad, user-correctable input."""

    status = 400

    @staticmethod
    def field(name: str, reason: str) -> "ValidationFailed":
        return ValidationFailed(f"error-blogify-1000 Invalid {name}: {reason}")

    @staticmethod
    def duplicate_email() -> "ValidationFailed":
        return ValidationFailed("error-blogify-1001 Email is already registered")

    @staticmethod
    def invalid_credentials() -> "ValidationFailed":
        return ValidationFailed("error-blogify-1002 Incorrect email or password")

    @staticmethod
    def prehashed_password() -> "ValidationFailed":
        return ValidationFailed(
            "error-blogify-1003 Password material must be supplied in plaintext"
        )


class Unauthorized(BlogifyError):
    """No resolved identity on a route that needs one."""

    status = 401

    @staticmethod
    def login_required() -> "Unauthorized":
        return Unauthorized("error-blogify-1100 Login required")


class Forbidden(BlogifyError):
    """Resolved identity is not the owner of the target resource."""

    status = 403

    @staticmethod
    def not_owner() -> "Forbidden":
        return Forbidden("error-blogify-1200 Only the author may change this post")


class NotFound(BlogifyError):
    status = 404

    @staticmethod
    def account() -> "NotFound":
        return NotFound("error-blogify-1300 Account not found")

    @staticmethod
    def post() -> "NotFound":
        return NotFound("error-blogify-1301 Post not found")


class InvalidOAuthState(BlogifyError):
    """Anti-forgery check on the OAuth callback failed."""

    status = 400

    @staticmethod
    def missing() -> "InvalidOAuthState":
        return InvalidOAuthState("error-blogify-1400 OAuth flow state missing or expired")

    @staticmethod
    def mismatch() -> "InvalidOAuthState":
        return InvalidOAuthState("error-blogify-1401 OAuth state mismatch")


class UpstreamFailure(BlogifyError):
    """The social provider, text generator or image store failed."""

    status = 502

    def __init__(self, message: str, upstream_status: int = 0) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status

    @staticmethod
    def social(reason: str, upstream_status: int = 0) -> "UpstreamFailure":
        return UpstreamFailure(
            f"error-blogify-1500 Social provider error: {reason}", upstream_status
        )

    @staticmethod
    def text_generation(reason: str, upstream_status: int = 0) -> "UpstreamFailure":
        return UpstreamFailure(
            f"error-blogify-1501 Text generation error: {reason}", upstream_status
        )

    @staticmethod
    def image_store(reason: str) -> "UpstreamFailure":
        return UpstreamFailure(f"error-blogify-1502 Image upload failed: {reason}")
