from pydantic import BaseModel
from typing import Generic, Optional, TypeVar
from uuid import UUID

# Shared properties
T = TypeVar("T")


class UserToken(BaseModel):
    user_id: str
    session_id: Optional[str] = None
    profile_id: Optional[UUID] = None
    name: Optional[str] = None
    account_type: str
    exp: Optional[int] = None


class CommonQueryParams(BaseModel):
    skip: Optional[int] = 0
    limit: Optional[int] = 10


class JsonOutResult(BaseModel, Generic[T]):
    data: Optional[T] = None
    status: str
    status_code: str
    message: str
