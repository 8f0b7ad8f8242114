# app/schemas/token.py
from pydantic import BaseModel, Field
from typing import Optional


class TokenPayload(BaseModel):
    sub: str  # "sub" is the standard claim for subject (user ID)
    # Workspace the user acts for; segments and campaigns belong to it
    org_id: Optional[str] = Field(default=None, alias="orgId")
    exp: int  # Standard claim for expiration time

    model_config = {
        "populate_by_name": True,  # Allow populating by alias
        "from_attributes": True,
    }

    @property
    def owner_id(self) -> str:
        """Owner of the CRM data: the organization when present, else the user."""
        return self.org_id or self.sub
