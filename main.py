# file: main.py
# version: v1.0
import logging
from typing import Optional

from fastapi import FastAPI

import config
from call_service import CallService
from instructions_service import InstructionsService
from persistence_service import PersistenceService, SupabaseClient
from routes import Routes
from websocket_handler import AIConnector, WebSocketHandler, connect_openai

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def create_app(
    call_service: Optional[CallService] = None,
    supabase: Optional[SupabaseClient] = None,
    ai_connector: AIConnector = connect_openai,
    domain: str = config.DOMAIN,
) -> FastAPI:
    """Build the app with its collaborators constructed explicitly."""
    supabase = supabase or SupabaseClient()
    call_service = call_service or CallService(
        config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN, config.PHONE_NUMBER_FROM
    )
    ws_handler = WebSocketHandler(
        persistence=PersistenceService(supabase),
        instructions=InstructionsService(supabase),
        ai_connector=ai_connector,
    )

    app = FastAPI(title="Realtime Call Bridge")
    Routes(app, call_service, ws_handler, domain=domain)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    config.validate_config()
    uvicorn.run(app, host=config.HOST, port=config.PORT)
