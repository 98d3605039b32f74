"""Request models for API endpoints."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class ChatRequest(BaseModel):
    """Request model for one chat turn."""

    # Required fields
    conversation_id: str = Field(..., description="Conversation ID")
    message: str = Field(..., min_length=1, description="User message")

    # Optional fields
    max_steps: Optional[int] = Field(None, ge=1, description="Step cap for this turn")
    model: Optional[str] = Field(None, description="Model config name for this turn (see GET /api/config)")

    @field_validator('conversation_id')
    @classmethod
    def conversation_id_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('conversation_id cannot be empty')
        return v.strip()

    @field_validator('message')
    @classmethod
    def message_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('message cannot be empty')
        return v.strip()

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "conversation_id": "3f9c2b",
                    "message": "What games are on tonight?",
                },
                {
                    "conversation_id": "3f9c2b",
                    "message": "Show me the Lakers game",
                    "max_steps": 5,
                    "model": "openai",
                },
            ]
        }
    )


class PluginConfigUpdate(BaseModel):
    """Request body for creating or replacing a plugin registry entry."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., description="Plugin base URL")
    enabled: bool = True
    api_key: Optional[str] = Field(None, alias="apiKey")
    display_name: Optional[str] = Field(None, alias="displayName")
    version: Optional[str] = None


class ConfigSwitchRequest(BaseModel):
    """Request body for switching the default model config."""

    name: str = Field(..., min_length=1, description="Model config name, e.g. 'openrouter'")
