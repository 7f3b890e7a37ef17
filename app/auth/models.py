# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuthUser(BaseModel):
    """
    Signed-in user taken from the Supabase JWT.

    Only what the token carries; roles and foundry membership are looked up
    from profiles by the services that need them.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID
    email: Optional[str] = None

    @property
    def user_id(self) -> str:
        return str(self.id)
