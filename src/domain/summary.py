"""
Closure analytics read models.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AepUserSummary(BaseModel):
    """Per-user closure counts. Computed on every query, never stored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    user_name: str
    s_closed: int = Field(default=0, ge=0)
    m_closed: int = Field(default=0, ge=0)
    l_closed: int = Field(default=0, ge=0)
    total_closed: int = Field(default=0, ge=0)
    on_time_closed: int = Field(default=0, ge=0)
    delayed_closed: int = Field(default=0, ge=0)
