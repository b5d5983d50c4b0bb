"""Pydantic schemas for the checkout chat API."""

from typing import Any

from pydantic import BaseModel, Field


class ChatStartRequest(BaseModel):
    """Open a checkout session from a product page."""

    session_id: str = Field(alias="sessionId", min_length=1, max_length=100)
    product_id: str = Field(alias="productId", min_length=1)

    model_config = {"populate_by_name": True}


class ChatMessageRequest(BaseModel):
    """A customer message or a clicked choice."""

    session_id: str = Field(alias="sessionId", min_length=1, max_length=100)
    content: str = Field(min_length=1, max_length=1000)

    model_config = {"populate_by_name": True}


class StepProgress(BaseModel):
    step: str
    index: int
    total: int
    percent: float


class ChatResponse(BaseModel):
    """Assistant reply with the choices to display and the progress bar."""

    session_id: str
    message: str
    choices: list[str] = []
    step: str | None = None
    progress: StepProgress | None = None
    data: dict[str, Any] = {}
    error: dict[str, Any] | None = None
