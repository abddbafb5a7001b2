"""Notification schemas."""

from pydantic import BaseModel


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    success: bool = True
    updated: int
