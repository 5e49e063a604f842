"""Request models for the chat API."""

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """A prompt submitted by the user.

    ``model`` is the model the user picked; premium gating is applied
    again when the response is streamed, so an unauthorised choice here
    is never honoured.  When omitted the tier default is used.
    """

    message: str = Field(
        ...,
        min_length=1,
        max_length=8000,
        description="The user's message content.",
    )
    model: str | None = Field(
        default=None,
        description="Requested model id.",
    )
