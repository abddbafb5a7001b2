"""Authentication request schemas."""

from pydantic import EmailStr, Field

from api.schemas.common import StrippedModel


class RegisterRequest(StrippedModel):
    """Sign-up of a new company and its first admin."""

    full_name: str = Field(min_length=1, max_length=255, description="Admin's full name")
    email: EmailStr
    password: str = Field(min_length=1, description="At least 8 characters")
    company_name: str = Field(min_length=1, max_length=255)


class LoginRequest(StrippedModel):
    email: str
    password: str
