from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents an authenticated shopper from the Supabase token.

    ``backend_user_id`` is the storefront's numeric user id, carried as a
    custom claim; it is what coupon and order calls expect as ``userId``.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    backend_user_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
