from typing import Literal

from pydantic import BaseModel


class SearchResult(BaseModel):
    type: Literal["line", "stop"]
    id: str
    title: str
    subtitle: str | None = None
