from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_FIELD = "invalid_field"  # Required field absent or malformed
    UNSUPPORTED = "unsupported"  # Action not meaningful for the resource type
    CREDENTIALS = "credentials"  # Credential material could not be decrypted
    POLL_TIMEOUT = "poll_timeout"
    POLL_CANCELLED = "poll_cancelled"


# Envelope fields share their messages across every resource type.
REGION_INVALID = "Datacenter Region invalid"
CREDENTIALS_INVALID = "Datacenter credentials invalid"
VPC_ID_INVALID = "Datacenter VPC ID invalid"


class AdapterError(Exception):
    """Base class for errors raised by adapters before or between provider calls.

    Provider errors (botocore) are not wrapped in this hierarchy; their text is
    reported verbatim.
    """

    kind: ErrorKind = ErrorKind.INVALID_FIELD

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.resource_type = resource_type
        self.field = field

    def __str__(self) -> str:
        return self.message


class FieldValidationError(AdapterError):
    kind = ErrorKind.INVALID_FIELD

    def __init__(self, resource_type: str, field: str, message: str):
        super().__init__(message, resource_type=resource_type, field=field)


class UnsupportedOperationError(AdapterError):
    kind = ErrorKind.UNSUPPORTED

    def __init__(self, subject: str, resource_type: Optional[str] = None):
        super().__init__(f"{subject} not supported", resource_type=resource_type)
        self.subject = subject


class CredentialsError(AdapterError):
    kind = ErrorKind.CREDENTIALS


class PollTimeoutError(AdapterError):
    kind = ErrorKind.POLL_TIMEOUT


class PollCancelledError(AdapterError):
    kind = ErrorKind.POLL_CANCELLED
