from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from models.enums import UserRole
import phonenumbers
import re

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str


class CreateUserRequest(BaseModel):
    email: EmailStr
    full_name: str
    password: str
    phone_number: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        """
        Password must be at least 8 characters and contain:
        - At least one letter
        - At least one digit
        """
        if len(value) < 8:
            raise ValueError('Password must be at least 8 characters')

        if not re.search(r'[A-Za-z]', value):
            raise ValueError('Password must contain at least one letter')

        if not re.search(r'\d', value):
            raise ValueError('Password must contain at least one digit')

        return value

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value):
        if not value or not value.strip():
            raise ValueError('Full name cannot be empty')
        return value.strip()

    @field_validator('phone_number')
    @classmethod
    def validate_phone(cls, value):
        """
        Optional. When given, must parse as an international number and is
        stored in E.164 form (+201234567890).
        """
        if value is None or not value.strip():
            return None
        try:
            parsed = phonenumbers.parse(value, None)
            if not phonenumbers.is_valid_number(parsed):
                raise ValueError('Invalid phone number')

            return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)

        except phonenumbers.NumberParseException:
            raise ValueError('Phone number must include country code (e.g.: +966xxxxxxxxx, +20xxxxxxxxxx)')


class RefreshTokenRequest(BaseModel):
    refresh_token: str

    @field_validator('refresh_token')
    @classmethod
    def validate_token(cls, value):
        if not value or not value.strip():
            raise ValueError('Refresh token cannot be empty')
        return value

class RevokeTokenRequest(RefreshTokenRequest):
    pass


class UpdateRoleRequest(BaseModel):
    role: UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: UserRole
