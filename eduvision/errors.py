"""Exception types shared by the session, backend and orchestrator layers."""


class EduVisionError(Exception):
    """Base class for all application errors."""


class MissingInputError(EduVisionError):
    """A mode was invoked without the input it requires (e.g. image edit without an image)."""


class SessionBusyError(EduVisionError):
    """A turn was submitted while another request is still pending."""


class InvalidTransitionError(EduVisionError):
    """A conversation operation was called from the wrong state."""


class BackendError(EduVisionError):
    """A call to the generative backend failed."""


class AccessDeniedError(BackendError):
    """The backend rejected the credential (HTTP 401/403)."""


class ApiUnavailableError(AccessDeniedError):
    """No API key has been selected yet."""


class EmptyResponseError(BackendError):
    """The backend answered but returned no usable text or media."""


class VideoGenerationError(BackendError):
    """A video job finished in a failed state."""


class VideoTimeoutError(VideoGenerationError):
    """A video job did not finish within the allowed number of polls."""
