from enum import Enum
from typing import Optional

# Markers are matched against the lowercased diagnostic text of a failure.
# Quota is checked before auth: a 429 body can also mention "permission".
QUOTA_MARKERS = ("429", "resource_exhausted", "quota")
AUTH_MARKERS = ("403", "permission", "not found")


class ErrorClass(str, Enum):
    QUOTA = "quota"
    AUTH_CREDENTIAL = "auth_credential"
    NO_IMAGE_PRODUCED = "no_image_produced"
    GENERIC = "generic"


class BackendCallError(Exception):
    """A transport-level failure from the generation backend."""

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(f"{status_code} {message}" if status_code is not None else message)
        self.status_code = status_code
        self.message = message

    @property
    def diagnostic_text(self) -> str:
        return str(self)


class NoImageProduced(Exception):
    """The call succeeded but the response carried no inline binary part."""


class CredentialUnavailable(Exception):
    """The credential provider could not supply a credential."""


class OperationError(Exception):
    """Terminal, classified failure of one operation; ``message`` is user-facing."""

    def __init__(self, error_class: ErrorClass, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.cause = cause


def classify_failure(error: BaseException) -> ErrorClass:
    """Map any failure raised by a backend call onto the error taxonomy."""
    if isinstance(error, NoImageProduced):
        return ErrorClass.NO_IMAGE_PRODUCED
    if isinstance(error, CredentialUnavailable):
        return ErrorClass.AUTH_CREDENTIAL
    if isinstance(error, BackendCallError):
        text = error.diagnostic_text
    else:
        text = f"{type(error).__name__} {error}"
    return classify_text(text)


def classify_text(text: str) -> ErrorClass:
    lowered = (text or "").lower()
    if any(marker in lowered for marker in QUOTA_MARKERS):
        return ErrorClass.QUOTA
    if any(marker in lowered for marker in AUTH_MARKERS):
        return ErrorClass.AUTH_CREDENTIAL
    return ErrorClass.GENERIC
