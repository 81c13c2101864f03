"""Pydantic schemas for webhook API responses."""

from pydantic import BaseModel, ConfigDict, field_validator

MAX_MESSAGE_ID = 2 ** 64 - 1


class CreatedMessageResponse(BaseModel):
    """Response model for a message created with ?wait=true."""
    model_config = ConfigDict(extra='ignore')

    id: int

    @field_validator('id', mode='before')
    @classmethod
    def parse_snowflake(cls, value):
        if not isinstance(value, str) or not value.isascii() or not value.isdigit():
            raise ValueError('message id must be a base-10 numeric string')
        parsed = int(value)
        if not 0 < parsed <= MAX_MESSAGE_ID:
            raise ValueError('message id must be a non-zero unsigned 64-bit integer')
        return parsed
