"""Request / response models for the HTTP surface."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

MOBILE_PATTERN = re.compile(r"^(?:(?:\+|0{0,2})91(\s*[\-]\s*)?|[0]?)?[6789]\d{9}$")
DEFAULT_COUNTRY_CODE = "+91"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CredentialsInput(_CamelModel):
    """Body of ``/signup`` and ``/login``."""

    email: EmailStr | None = None
    mobile_number: str | None = Field(default=None, alias="mobileNumber")
    password: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    @field_validator("mobile_number", mode="before")
    @classmethod
    def normalize_mobile(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            if not v.startswith("+"):
                v = f"{DEFAULT_COUNTRY_CODE}{v}"
            if not MOBILE_PATTERN.match(v):
                raise ValueError("Invalid mobile number")
        return v

    @model_validator(mode="after")
    def password_required_with_email(self) -> "CredentialsInput":
        if self.email and not self.password:
            raise ValueError("Password should not be empty")
        return self


class ValidateOtpInput(_CamelModel):
    validation_id: str = Field(alias="validationId", min_length=1)
    otp: str = Field(min_length=1)


class ResendOtpInput(_CamelModel):
    validation_id: str = Field(alias="validationId", min_length=1)


class ForgotPasswordInput(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class ValidateForgotPasswordInput(_CamelModel):
    validation_id: str = Field(alias="validationId", min_length=1)
    otp: str = Field(min_length=1)
    new_password: str = Field(alias="newPassword", min_length=1)


class ChangePasswordInput(_CamelModel):
    current_password: str | None = Field(default=None, alias="currentPassword")
    new_password: str = Field(alias="newPassword", min_length=1)


class ValidationIdResponse(_CamelModel):
    validation_id: str = Field(alias="validationId")


class RedirectResponseBody(_CamelModel):
    redirect_url: str = Field(alias="redirectUrl")
