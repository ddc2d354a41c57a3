"""Wire models for the directory lookup response."""
from typing import Annotated, Optional
from pydantic import BaseModel, Field


class Status(BaseModel):
    code: Annotated[int, Field()] = 0
    name: Annotated[str, Field()] = ""


class Basics(BaseModel):
    username: Annotated[str, Field()] = ""


class PrimaryKey(BaseModel):
    kid: Annotated[str, Field()] = ""
    bundle: Annotated[str, Field()] = ""


class PublicKeys(BaseModel):
    primary: Optional[PrimaryKey] = None


class User(BaseModel):
    basics: Basics = Field(default_factory=Basics)
    public_keys: Optional[PublicKeys] = None

    @property
    def primary_key(self) -> Optional[PrimaryKey]:
        return self.public_keys.primary if self.public_keys else None


class LookupResponse(BaseModel):
    """Body of ``GET /user/lookup.json``.

    The directory reports unknown users as ``null`` entries in ``them``.
    """
    status: Status = Field(default_factory=Status)
    them: Optional[list[Optional[User]]] = None
