"""FastAPI backend for Kids3D Teacher."""

import logging
from pathlib import Path
from typing import Any, AsyncIterator

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from kids3d_teacher.config import Config, get_config, setup_logging
from kids3d_teacher.errors import GatewayError, InvalidInput
from kids3d_teacher.gateway import MISSING_PROMPT, MISSING_TEXT, generate_reply, synthesize_speech
from kids3d_teacher.models import ChatResponse
from kids3d_teacher.providers import configured_providers

setup_logging()
logger = logging.getLogger(__name__)

_startup_config = Config.from_env()
for missing in _startup_config.validate():
    logger.warning("Configuration incomplete: %s", missing)

app = FastAPI(title="Kids3D Teacher")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_startup_config.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

if Path(_startup_config.audio_dir).is_dir():
    app.mount("/audio", StaticFiles(directory=_startup_config.audio_dir), name="audio")


async def get_http_client(config: Config = Depends(get_config)) -> AsyncIterator[httpx.AsyncClient]:
    """One outbound client per request, with an explicit timeout."""
    async with httpx.AsyncClient(timeout=config.llm_timeout_seconds) as client:
        yield client


async def read_json_body(request: Request, error: str) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise InvalidInput(error) from e


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """Last resort: still answer with an envelope."""
    logger.exception("Internal server error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Internal server error", "details": str(exc)},
    )


@app.get("/")
async def health(config: Config = Depends(get_config)):
    """Report status and which providers are configured."""
    return {
        "ok": True,
        "message": "Kids3D Teacher backend is running",
        "providers": configured_providers(config),
    }


async def chat(
    request: Request,
    config: Config = Depends(get_config),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Forward a prompt to the configured provider and return its reply."""
    body = await read_json_body(request, MISSING_PROMPT)
    reply = await generate_reply(body, config, client)
    return ChatResponse(reply=reply)


# Same handler under both paths
app.add_api_route("/api/chat", chat, methods=["POST"], response_model=ChatResponse)
app.add_api_route("/api/generate", chat, methods=["POST"], response_model=ChatResponse)


@app.post("/api/tts")
async def tts(request: Request, config: Config = Depends(get_config)):
    """Speech synthesis stub; always answers with an error envelope."""
    body = await read_json_body(request, MISSING_TEXT)
    synthesize_speech(body, config)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=_startup_config.host, port=_startup_config.port)
