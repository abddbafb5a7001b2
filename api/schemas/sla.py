"""SLA configuration schemas."""

from typing import List
from pydantic import BaseModel

from api.schemas.common import StrippedModel


class SLAConfigInput(StrippedModel):
    stage_name: str
    threshold_days: int


class SLAConfigBatch(BaseModel):
    configs: List[SLAConfigInput]
