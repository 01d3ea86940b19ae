from pydantic import BaseModel, EmailStr, Field

from marketmate.models.enums import UserRole, UserStatus


class UserBootstrap(BaseModel):
    display_name: str = Field(min_length=1, max_length=120)
    email: EmailStr | None = None
    role: UserRole = UserRole.BUYER


class UserBootstrapOut(BaseModel):
    user_id: str
    role: str
    api_key: str


class RotateKeyOut(BaseModel):
    user_id: str
    api_key: str
    revoked: int


class UserStatusUpdate(BaseModel):
    status: UserStatus


class UserOut(BaseModel):
    id: str
    display_name: str
    email: str | None
    role: str
    status: str
