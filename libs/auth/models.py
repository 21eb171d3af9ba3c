from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents an authenticated caller from a Supabase (or service-role) JWT.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"

    @property
    def is_service_role(self) -> bool:
        return self.role == "service_role"

    def can_act_for(self, user_id: Optional[str]) -> bool:
        """Buyers may only act on their own resources; service role on any."""
        return self.is_service_role or (user_id is not None and user_id == self.user_id)
