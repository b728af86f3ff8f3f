"""
Pydantic schemas for API requests
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator

from ..funding import FundingSource
from ..models import FundingSourceType
from ..users import SignupData


# Auth schemas
class SignupRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: str = Field(..., description="YYYY-MM-DD")
    ssn: str = Field(..., description="9 digits, stored hashed")
    address: str
    city: str
    state: str = Field(..., description="Two-letter US state code")
    zip_code: str

    def to_signup_data(self) -> SignupData:
        return SignupData(**self.model_dump())


class LoginRequest(BaseModel):
    email: str
    password: str


# Account schemas
class CreateAccountRequest(BaseModel):
    account_type: str = Field(..., description="checking or savings")


class FundingSourceModel(BaseModel):
    type: str = Field(..., description=" or ".join(t.value for t in FundingSourceType))
    account_number: str = ""
    routing_number: Optional[str] = None

    def to_funding_source(self) -> FundingSource:
        return FundingSource(
            type=self.type,
            account_number=self.account_number,
            routing_number=self.routing_number
        )


class FundAccountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount, e.g. '100.00' or 100")
    funding_source: FundingSourceModel

    @field_validator("amount", mode="before")
    @classmethod
    def amount_as_text(cls, value):
        # Numbers are validated by their decimal text like any string amount
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value
