from __future__ import annotations


class OcrBridgeError(Exception):
    """Base class for all service errors."""


class BusyError(OcrBridgeError):
    """Another job is currently processing; admission is reject-on-busy."""


class InvalidInputError(OcrBridgeError):
    """Submitted image is missing, too large or not an image."""


class NotFoundError(OcrBridgeError):
    """Unknown job id or channel."""


class EngineInvocationError(OcrBridgeError):
    """External recognition process failed to start or exited fatally."""


class ParseError(OcrBridgeError):
    """Engine produced malformed tabular output."""


class DeliveryError(OcrBridgeError):
    """Webhook callback could not be delivered."""


class TempStorageError(OcrBridgeError):
    """Per-job scratch file or directory could not be written."""
