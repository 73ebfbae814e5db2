from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class UserResponse(BaseModel):
    id: str
    user_id: str
    email: Optional[str] = None
    name: str
    phone: Optional[str] = None
    image_url: Optional[str] = None
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None
    role: str = "user"
    account_type: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
