"""
Domain exceptions for the voice session subsystem

Each exception carries a short user-facing title; the message is the
description shown in notifications.
"""


class VoiceLinkError(Exception):
    """Base class for all VOICELINK failures"""

    title = "Voice input error"


class EngineCreationError(VoiceLinkError):
    """Detector could not be constructed or started (device, permission, assets)"""

    title = "Failed to start microphone"


class TranscriptionError(VoiceLinkError):
    """Transcription backend failed or produced no usable result"""

    title = "Transcription failed"


class DispatchError(VoiceLinkError):
    """Message could not be delivered (channel not open or unauthenticated)"""

    title = "Failed to send message"


class ConfigurationError(VoiceLinkError):
    """Engagement attempted while the readiness gate is closed"""

    title = "Cannot start microphone"
