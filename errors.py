# linkkeeper/errors.py


class LinkKeeperError(Exception):
    """Base class for errors the HTTP layer knows how to render."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.error)
        self.message = message or self.error


class InvalidUrl(LinkKeeperError):
    status_code = 400
    error = "Invalid URL"


class InvalidCursor(LinkKeeperError):
    status_code = 400
    error = "Invalid cursor"


class InvalidParameter(LinkKeeperError):
    status_code = 400
    error = "Invalid parameter"


class NotFound(LinkKeeperError):
    status_code = 404
    error = "URL not found"


class DuplicateKey(LinkKeeperError):
    # 只在 use case 內部處理，不會回到 client
    status_code = 409
    error = "Duplicate URL"


class Unauthorized(LinkKeeperError):
    status_code = 401
    error = "Unauthorized"


class Forbidden(LinkKeeperError):
    status_code = 403
    error = "Forbidden"


class UpstreamFailure(LinkKeeperError):
    """An external fetch, API or storage call failed during enrichment."""

    status_code = 502
    error = "Upstream failure"
