"""Shared schema base classes."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input and serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRangeModel(CamelModel):
    start_date: date
    end_date: date
