"""Generation API: run one model invocation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from mediagen.schemas.generation import GenerateRequest, GenerateResponse
from mediagen.services.errors import (
    CredentialError,
    ExecutionCancelledError,
    MediaGenError,
    PollingTimeoutError,
    ProtocolError,
    RemoteError,
    TransportError,
    UnsupportedOperationError,
    ValidationError,
)
from mediagen.services.generation import GenerationRequest, GenerationService

logger = logging.getLogger(__name__)

router = APIRouter()

# Checked in order; first match wins.
_ERROR_STATUS: tuple[tuple[type[MediaGenError], int], ...] = (
    (ValidationError, 400),
    (UnsupportedOperationError, 400),
    (CredentialError, 401),
    (ProtocolError, 502),
    (RemoteError, 502),
    (TransportError, 504),
    (PollingTimeoutError, 504),
    (ExecutionCancelledError, 499),  # client closed request
)


def http_status_for(error: MediaGenError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


DISCONNECT_CHECK_SECONDS = 1.0


async def _watch_disconnect(request: Request, cancel_token: asyncio.Event) -> None:
    """Background task: set the cancel token once the client goes away."""
    while not cancel_token.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected from %s, cancelling generation", request.url.path)
            cancel_token.set()
            return
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=DISCONNECT_CHECK_SECONDS)
        except asyncio.TimeoutError:
            pass


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    req: GenerateRequest,
    request: Request,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any]:
    """Run a generation synchronously or via submit-and-poll.

    With ``continue_on_fail`` a failure comes back as ``ok: false`` with the
    error record and the original input instead of an HTTP error. A client
    that disconnects mid-poll cancels the job's polling loop.
    """
    gen_request = GenerationRequest(
        platform=req.platform,
        model=req.model,
        mode=req.mode,
        params=req.params,
    )

    cancel_token = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_token))
    try:
        if req.continue_on_fail:
            outcome = await service.generate_or_record(
                gen_request, item=req.model_dump(mode="json"), cancel_token=cancel_token
            )
            return outcome.to_dict()

        try:
            result = await service.generate(gen_request, cancel_token=cancel_token)
        except MediaGenError as e:
            status_code = http_status_for(e)
            logger.error(
                "Generation %s:%s failed (%d): %s", req.platform, req.model, status_code, e.message
            )
            raise HTTPException(status_code=status_code, detail=e.to_dict())
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)

    return {"ok": True, "result": result.to_dict()}
