from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

REQUIRED_ADDRESS_FIELDS = ("full_name", "phone", "address_line", "city", "province", "postal_code")


# Request schema for creating or replacing a saved address
class AddressIn(BaseModel):
    label: Optional[str] = None
    full_name: str
    phone: str
    address_line: str
    city: str
    province: str
    postal_code: str

    @field_validator(*REQUIRED_ADDRESS_FIELDS)
    @classmethod
    def _not_blank(cls, v: str, info):
        if v is None or not str(v).strip():
            raise ValueError(f"Missing required field: {info.field_name}")
        return v.strip()


class AddressOut(AddressIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    created_at: Optional[datetime] = None
