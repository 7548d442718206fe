"""
Error taxonomy for the uploader.

Lifecycle failures are captured into a record's ``error`` field by the
controller; only ``NotAuthenticated`` (and write failures with no record to
carry them) reach the caller as exceptions.
"""


class UploaderError(Exception):
    """Base class for all uploader errors"""


class NotAuthenticated(UploaderError):
    """A mutating operation was attempted without a signed-in user"""

    def __init__(self, message: str = "User not signed in"):
        super().__init__(message)


class TransferFailed(UploaderError):
    """Writing the local file to the object store failed"""


class URLResolutionFailed(UploaderError):
    """The object store could not produce a download URL after upload"""


class RemoteWriteFailed(UploaderError):
    """A document store write was rejected or could not be delivered"""


class SubscriptionFailed(UploaderError):
    """The remote change stream errored (network loss, permission, ...)"""


class DecodeFailed(UploaderError):
    """A single remote document could not be decoded into a VideoRecord"""


class InvalidTransition(UploaderError):
    """A status change not permitted by the upload state machine"""


class BlobDeleteFailed(UploaderError):
    """The object store refused to delete a blob"""


class InvalidWebhookURL(UploaderError):
    """The configured webhook URL cannot be used for a request"""


class RecordNotFound(UploaderError):
    """No record with the given id is known locally"""
