"""
VOICELINK - Voice activity session orchestration for conversational avatars

An always-listening voice input client featuring:
- Speech session lifecycle driven by an external VAD detector
- Independent engine-running / processing-enabled engagement flags
- Transcription hand-off and dispatch to a remote conversational backend
- Local HTTP remote control for muting and unmuting speech processing
"""

__version__ = "0.1.0"
__author__ = "VOICELINK Team"
