"""
Remote Control API - out-of-process microphone processing control

Lets stream decks, hotkey daemons and scripts mute or unmute speech
processing. Every mutating endpoint goes through
EngagementManager.toggle_processing_enabled / set_processing_enabled, the
same path local controls use, so both producers observe one state.

Endpoints:
- GET  /mictoggle        toggle, plain-text ON/OFF
- GET  /micstatus        plain-text ON/OFF
- POST /api/mic/{action} enable | disable | toggle
- GET  /api/mic/state    engagement flags
- GET  /health           service health
"""

import time
from typing import Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from voicelink import __version__
from voicelink.core.engagement_manager import EngagementManager

logger = structlog.get_logger()
router = APIRouter(tags=["Remote Control"])

MIC_ACTIONS = ("enable", "disable", "toggle")


class MicState(BaseModel):
    """Engagement flags as seen by remote producers"""
    engine_running: bool
    processing_enabled: bool


class MicActionResponse(BaseModel):
    success: bool = True
    action: str
    processing_enabled: bool
    status: str


class MicStateResponse(BaseModel):
    success: bool = True
    state: MicState
    status: str


class HealthResponse(BaseModel):
    status: str
    service: str = "voicelink-remote-control"
    version: str = __version__
    ready: bool
    engagement: MicState
    session: Dict
    timestamp: float = Field(default_factory=time.time)


def get_engagement_manager(request: Request) -> EngagementManager:
    """Manager bound to the application at construction time"""
    manager = getattr(request.app.state, "engagement_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Engagement manager not attached")
    return manager


def _status_text(processing_enabled: bool) -> str:
    return "ON" if processing_enabled else "OFF"


def _mic_state(manager: EngagementManager) -> MicState:
    return MicState(
        engine_running=manager.state.engine_running,
        processing_enabled=manager.state.processing_enabled,
    )


@router.get("/mictoggle", response_class=PlainTextResponse)
async def mic_toggle(manager: EngagementManager = Depends(get_engagement_manager)):
    """Toggle speech processing; returns ON or OFF"""
    enabled = await manager.toggle_processing_enabled()
    logger.info("remote_control.toggle", processing_enabled=enabled)
    return _status_text(enabled)


@router.get("/micstatus", response_class=PlainTextResponse)
async def mic_status(manager: EngagementManager = Depends(get_engagement_manager)):
    """Current speech processing state; returns ON or OFF"""
    return _status_text(manager.state.processing_enabled)


@router.post("/api/mic/{action}", response_model=MicActionResponse)
async def mic_action(action: str, manager: EngagementManager = Depends(get_engagement_manager)):
    """Enable, disable or toggle speech processing"""
    if action not in MIC_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")

    if action == "toggle":
        enabled = await manager.toggle_processing_enabled()
    else:
        enabled = await manager.set_processing_enabled(action == "enable")

    logger.info("remote_control.action", action=action, processing_enabled=enabled)
    return MicActionResponse(
        action=action,
        processing_enabled=enabled,
        status=_status_text(enabled),
    )


@router.get("/api/mic/state", response_model=MicStateResponse)
async def mic_state(manager: EngagementManager = Depends(get_engagement_manager)):
    """Engine and processing flags"""
    return MicStateResponse(
        state=_mic_state(manager),
        status=_status_text(manager.state.processing_enabled),
    )


@router.get("/health", response_model=HealthResponse)
async def health(manager: EngagementManager = Depends(get_engagement_manager)):
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        ready=manager.is_ready(),
        engagement=_mic_state(manager),
        session=manager.controller.snapshot(),
    )
