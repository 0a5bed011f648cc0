"""
Readiness gate

Engagement is only allowed once the outbound channel is usable and the
transcription backend has finished initializing.
"""

from dataclasses import dataclass
from typing import Optional


CHANNEL_OPEN = "OPEN"


@dataclass(frozen=True)
class ReadinessSnapshot:
    """External signals observed at one instant"""
    api_key: Optional[str] = None
    channel_state: str = "CLOSED"
    is_authenticated: bool = False
    authentication_pending: bool = False
    transcription_ready: bool = False


def missing_requirements(snapshot: ReadinessSnapshot) -> list[str]:
    """Names of the checks that currently fail, in evaluation order"""
    missing = []
    if not (snapshot.api_key and snapshot.api_key.strip()):
        missing.append("api_key")
    if snapshot.channel_state != CHANNEL_OPEN:
        missing.append("channel_open")
    if not snapshot.is_authenticated or snapshot.authentication_pending:
        missing.append("authenticated")
    if not snapshot.transcription_ready:
        missing.append("transcription_ready")
    return missing


def is_ready(snapshot: ReadinessSnapshot) -> bool:
    return not missing_requirements(snapshot)
