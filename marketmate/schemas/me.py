from pydantic import BaseModel


class MeOut(BaseModel):
    user_id: str
    api_key_id: str | None
    role: str
    status: str
    display_name: str
    renewals_remaining: int
