"""Request bodies for the REST API. Field names on the wire are camelCase."""

import json
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..persistence.repository import WidgetRecord


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PageRequest(_CamelModel):
    user_id: str = Field(alias="userId", min_length=1)
    page_id: str = Field(alias="pageId", min_length=1)
    page_name: str = Field(alias="pageName", min_length=1)


class WidgetPayload(_CamelModel):
    """One widget in a ``POST /widgets`` batch.

    ``config`` and ``layout`` may be sent as JSON text or as objects; both
    are stored as JSON text.
    """

    user_id: str = Field(alias="userId", min_length=1)
    page_id: str = Field(alias="pageId", default="main-page")
    widget_id: str = Field(alias="widgetId", min_length=1)
    widget_type: str = Field(alias="widgetType", min_length=1)
    config: Union[str, dict[str, Any], None] = ""
    layout: Union[str, dict[str, Any], None] = ""

    @field_validator("page_id")
    @classmethod
    def default_page(cls, v: str) -> str:
        return v or "main-page"

    @staticmethod
    def _as_text(value: Union[str, dict, None]) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return json.dumps(value)

    def to_record(self) -> WidgetRecord:
        return WidgetRecord(
            user_id=self.user_id,
            page_id=self.page_id,
            widget_id=self.widget_id,
            widget_type=self.widget_type,
            config=self._as_text(self.config),
            layout=self._as_text(self.layout),
        )


class PriorityRequest(BaseModel):
    priority: str = Field(min_length=1)
