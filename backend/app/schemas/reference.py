from pydantic import BaseModel
from typing import Optional


class BoardInfo(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    display_order: Optional[int] = None

    class Config:
        from_attributes = True


class KeywordEnum(BaseModel):
    id: int
    name: str
    board_id: Optional[int] = None
    common: bool

    class Config:
        from_attributes = True
