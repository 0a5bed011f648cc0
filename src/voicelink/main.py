"""
VOICELINK - remote control server

Exposes the remote control API for a VoiceClient owned by the host
application. The client's lifecycle (open/close) stays with the host;
this module only serves HTTP on the loopback interface.
"""

from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI

from voicelink import __version__
from voicelink.api.remote_control import router as remote_control_router
from voicelink.client import VoiceClient
from voicelink.core.config import config
from voicelink.core.logging_config import configure_logging

# Configure unified structured logging
configure_logging()
logger = structlog.get_logger()


def create_app(client: VoiceClient) -> FastAPI:
    """Build the remote control application bound to one client"""
    app = FastAPI(
        title="VOICELINK - Remote Control",
        description="Mute, unmute and inspect always-listening voice input",
        version=__version__,
    )
    app.state.engagement_manager = client.manager
    app.include_router(remote_control_router)
    return app


async def serve_remote_control(client: VoiceClient,
                               host: Optional[str] = None,
                               port: Optional[int] = None) -> None:
    """Run the remote control server until cancelled"""
    host = host or config.CONTROL_HOST
    port = port or config.CONTROL_PORT

    server = uvicorn.Server(uvicorn.Config(
        create_app(client),
        host=host,
        port=port,
        log_level=config.LOG_LEVEL.lower(),
    ))

    logger.info("remote_control.starting",
                host=host,
                port=port,
                toggle_url=f"http://{host}:{port}/mictoggle",
                status_url=f"http://{host}:{port}/micstatus")
    await server.serve()
