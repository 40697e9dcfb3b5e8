"""
FastAPI routes for handling Twilio webhooks and the media stream.
"""
import logging

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from call_service import CallService, CallServiceNotConfigured
from config import MEDIA_STREAM_PATH
from twiml import build_stream_twiml, media_stream_url
from utils import normalize_domain
from websocket_handler import WebSocketHandler

logger = logging.getLogger(__name__)


class MakeCallRequest(BaseModel):
    to: str


class Routes:
    """Contains all FastAPI route handlers."""

    def __init__(self, app: FastAPI, call_service: CallService, ws_handler: WebSocketHandler, domain: str = ""):
        self.app = app
        self.call_service = call_service
        self.ws_handler = ws_handler
        self.domain = normalize_domain(domain) if domain else ""
        self._setup_routes()

    def _setup_routes(self):
        """Setup all route handlers."""
        self.app.get("/", response_class=JSONResponse)(self.index_page)
        self.app.post("/", response_class=HTMLResponse)(self.root_incoming)
        self.app.api_route("/incoming-call", methods=["GET", "POST"])(self.handle_incoming_call)
        self.app.post("/make-call")(self.make_call)
        self.app.websocket(MEDIA_STREAM_PATH)(self.media_stream)

    def stream_host(self, request: Request) -> str:
        """Public host of the media stream; Twilio must be able to reach it."""
        if self.domain:
            return self.domain
        host = request.url.hostname
        if "ngrok" in request.headers.get("host", ""):
            host = request.headers["host"]
        return host

    async def index_page(self):
        """Root endpoint returning status information."""
        return {"message": "Realtime call bridge is running."}

    async def root_incoming(self, request: Request):
        """Handle POST requests to root - redirect to incoming call handler."""
        return await self.handle_incoming_call(request)

    async def handle_incoming_call(self, request: Request):
        """Handle incoming call webhook from Twilio."""
        host = self.stream_host(request)
        logger.info("Using WebSocket URL: %s", media_stream_url(host))
        return HTMLResponse(content=build_stream_twiml(host), media_type="application/xml")

    def make_call(self, body: MakeCallRequest, request: Request):
        """Originate an outbound call that streams into this server."""
        try:
            sid = self.call_service.place_call(body.to, build_stream_twiml(self.stream_host(request)))
        except CallServiceNotConfigured as e:
            logger.error("Outbound call rejected: %s", e)
            return JSONResponse(status_code=503, content={"error": "Outbound calling is not configured"})
        except Exception:
            logger.exception("Outbound call error")
            return JSONResponse(status_code=500, content={"error": "Call failed"})
        return {"success": True, "callSid": sid}

    async def media_stream(self, websocket: WebSocket):
        await self.ws_handler.handle_media_stream(websocket)
