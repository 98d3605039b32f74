"""API route handlers."""

import logging
import json
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from ..models.requests import ChatRequest, ConfigSwitchRequest
from ..dependencies import get_chat_service, get_config_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat")
async def chat(request: Request):
    """
    Chat endpoint - runs one tool-calling turn and streams it

    Args:
        request: FastAPI Request object for accessing HTTP request details

    Returns:
        Streamed ``data:`` frames with chat events, terminated by ``data: [DONE]``

    Request Body (ChatRequest):
        - conversation_id: str (required) - conversation to continue or start
        - message: str (required) - user message
        - max_steps: int (optional) - step cap for this turn
        - model: str (optional) - model config name for this turn

    Examples:
        ```
        POST /api/chat
        {
          "conversation_id": "3f9c2b",
          "message": "What games are on tonight?"
        }
        ```

    Response Stream:
        ```
        data: {"type": "text-delta", "delta": "Let me check"}

        data: {"type": "tool-input-start", "toolCallId": "call_1", "toolName": "getGames"}

        data: {"type": "tool-output-available", "toolCallId": "call_1", "output": {...}}

        data: {"type": "finish", "finishReason": "complete"}

        data: [DONE]
        ```
    """
    try:
        # Parse and validate request body
        body = await request.json()

        try:
            chat_request = ChatRequest(**body)
        except (ValidationError, TypeError) as e:
            errors = []
            if isinstance(e, ValidationError):
                for error in e.errors():
                    field = ".".join(str(loc) for loc in error["loc"])
                    errors.append({
                        "field": field,
                        "message": error["msg"],
                        "type": error["type"]
                    })
            else:
                errors.append({"field": "", "message": "Request body must be a JSON object", "type": "type_error"})
            logger.warning(f"Validation error: {errors}")
            return JSONResponse(
                status_code=422,
                content={
                    "error": "Validation Error",
                    "message": "Request validation failed",
                    "details": errors
                }
            )

        if chat_request.model and get_config_service().get_config(chat_request.model) is None:
            logger.warning(f"Unknown model config: {chat_request.model}")
            return JSONResponse(
                status_code=422,
                content={
                    "error": "Validation Error",
                    "message": "Request validation failed",
                    "details": [{
                        "field": "model",
                        "message": f"Unknown model config '{chat_request.model}'",
                        "type": "value_error"
                    }]
                }
            )

        logger.info(
            f"Received chat request: conversation={chat_request.conversation_id}, "
            f"message_chars={len(chat_request.message)}, max_steps={chat_request.max_steps}"
        )

        # Get service and process (dependency injection)
        chat_service = get_chat_service()

        return EventSourceResponse(
            chat_service.process_chat(chat_request),
            media_type="text/event-stream",
            sep="\n",
        )

    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in request body: {str(e)}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Bad Request",
                "message": "Invalid JSON in request body",
                "details": str(e)
            }
        )
    except Exception as e:
        logger.error(f"Error in chat: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str, since: int = Query(0, ge=0)):
    """
    List persisted messages of a conversation.

    Args:
        conversation_id: Conversation ID
        since: Position of the first message to return

    Returns:
        {"conversation_id": ..., "since": N, "messages": [...]}
    """
    chat_service = get_chat_service()
    messages = await chat_service.list_messages(conversation_id, since)
    return {
        "conversation_id": conversation_id,
        "since": since,
        "messages": [m.to_wire() for m in messages],
    }


@router.get("/config")
async def get_config():
    """
    List the model configs and which one is the default.

    Returns:
        {"current": name, "configs": [{name, description, base_url, model, is_active}]}
    """
    config_service = get_config_service()
    return {
        "current": config_service.get_current_config_name(),
        "configs": config_service.get_available_configs(),
    }


@router.post("/config")
async def switch_config(body: ConfigSwitchRequest):
    """
    Switch the default model config. Takes effect on the next chat turn.

    Errors:
        404 unknown config, 400 config not usable (e.g. missing API key)
    """
    config_service = get_config_service()
    if config_service.get_config(body.name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown model config '{body.name}'")
    if not config_service.switch_config(body.name):
        _, error = config_service.get_config(body.name).validate()
        raise HTTPException(status_code=400, detail=error or f"Model config '{body.name}' is not usable")
    return {"message": f"Switched to '{body.name}'", "current": body.name}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "plugin-chat-service"}
