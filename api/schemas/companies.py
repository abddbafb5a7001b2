"""Company profile schemas."""

from typing import Optional
from pydantic import Field

from api.schemas.common import StrippedModel


class CompanyUpdate(StrippedModel):
    """Profile fields; only the ones sent are changed."""

    name: Optional[str] = Field(None, max_length=255)
    logo_url: Optional[str] = None
    contact_email: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    company_size: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    facebook_url: Optional[str] = None
    careers_page_url: Optional[str] = None
