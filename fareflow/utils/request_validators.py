import re
from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RequestModel(BaseModel):
    """Accepts the camelCase keys API clients send as well as field names"""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class SearchRequest(RequestModel):
    trip_type: str = Field("Oneway", alias="tripType")
    origin: str = Field(..., min_length=3, max_length=3)
    destination: str = Field(..., min_length=3, max_length=3)
    departure_date: date = Field(..., alias="departureDate")
    return_date: Optional[date] = Field(None, alias="returnDate")
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    cabin_class: str = Field("Economy", alias="cabinType")
    nonstop: int = Field(0, ge=0, le=1)
    airline: str = ""
    solutions: int = Field(0, ge=0)

    @field_validator("origin", "destination")
    @classmethod
    def upper_iata(cls, value: str) -> str:
        return value.upper()

    @field_validator("departure_date")
    @classmethod
    def not_in_past(cls, value: date) -> date:
        if value < date.today():
            raise ValueError("departureDate must be today or later")
        return value

    @model_validator(mode="after")
    def check_return_date(self) -> "SearchRequest":
        if self.return_date and self.return_date <= self.departure_date:
            raise ValueError("returnDate must be after departureDate")
        if self.trip_type.lower() == "roundtrip" and not self.return_date:
            raise ValueError("returnDate is required for round trips")
        return self


class PricingRequest(RequestModel):
    solution_id: str = Field(..., alias="solutionId", min_length=1)
    solution_key: Optional[str] = Field(None, alias="solutionKey")
    journeys: Dict[str, List[str]] = Field(default_factory=dict)
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    cabin: str = Field("Economy", alias="cabinType")
    tag: str = ""


class PassengerRequest(RequestModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=255)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=255)
    type: Literal["ADT", "CHD", "INF"]
    dob: date
    gender: Literal["Male", "Female"]
    passport_number: Optional[str] = Field(None, alias="passportNumber", max_length=255)
    passport_expiry: Optional[date] = Field(None, alias="passportExpiry")
    nationality: Optional[str] = Field(None, min_length=2, max_length=2)

    @field_validator("passport_expiry")
    @classmethod
    def passport_valid(cls, value: Optional[date]) -> Optional[date]:
        if value and value < date.today():
            raise ValueError("passportExpiry must be today or later")
        return value

    @property
    def sex(self) -> str:
        return "M" if self.gender == "Male" else "F"

    def to_provider(self, passenger_index: int) -> Dict:
        """PKFare booking passenger block"""
        return {
            "passengerIndex": passenger_index,
            "psgType": self.type,
            "sex": self.sex,
            "birthday": self.dob.isoformat(),
            "firstName": self.first_name.upper(),
            "lastName": self.last_name.upper(),
            "nationality": (self.nationality or "").upper(),
            "cardType": "P" if self.passport_number else None,
            "cardNum": self.passport_number,
            "cardExpiredDate": self.passport_expiry.isoformat() if self.passport_expiry else None,
        }

    def to_row(self) -> Dict:
        """booking_passengers columns"""
        return {
            "psg_type": self.type,
            "sex": self.sex,
            "birthday": self.dob.isoformat(),
            "first_name": self.first_name.upper(),
            "last_name": self.last_name.upper(),
            "nationality": (self.nationality or "").upper() or None,
            "card_type": "P" if self.passport_number else None,
            "card_num": self.passport_number,
            "card_expired_date": self.passport_expiry.isoformat() if self.passport_expiry else None,
        }


class ContactRequest(RequestModel):
    name: str = Field(..., alias="contactName", min_length=1, max_length=155)
    email: str = Field(..., alias="contactEmail", max_length=255)
    phone: str = Field(..., alias="contactPhone", min_length=1, max_length=20)

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("contactEmail must be a valid email address")
        return value

    def to_provider(self) -> Dict:
        return {"name": self.name, "email": self.email, "telNum": self.phone}


class BookingRequest(RequestModel):
    solution_id: str = Field(..., alias="solutionId", min_length=1)
    passengers: List[PassengerRequest] = Field(..., min_length=1)
    contact_name: str = Field(..., alias="contactName", min_length=1, max_length=155)
    contact_email: str = Field(..., alias="contactEmail", max_length=255)
    contact_phone: str = Field(..., alias="contactPhone", min_length=1, max_length=20)
    agent_fee: float = Field(0, alias="agentFee", ge=0)

    @field_validator("contact_email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("contactEmail must be a valid email address")
        return value

    @property
    def contact(self) -> ContactRequest:
        return ContactRequest(name=self.contact_name, email=self.contact_email, phone=self.contact_phone)

    def passenger_counts(self) -> Dict[str, int]:
        counts = {"ADT": 0, "CHD": 0, "INF": 0}
        for passenger in self.passengers:
            counts[passenger.type] += 1
        return counts


class TicketingRequest(RequestModel):
    pnr: Optional[str] = None
    contact_name: Optional[str] = Field(None, alias="contactName")
    contact_email: Optional[str] = Field(None, alias="contactEmail")
    contact_phone: Optional[str] = Field(None, alias="contactPhone")


class CancelRequest(RequestModel):
    pnr: Optional[str] = None


def validation_errors(exc) -> Dict[str, List[str]]:
    """pydantic ValidationError -> {field: [messages]} for 422 responses"""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "body"
        errors.setdefault(location, []).append(error.get("msg", "Invalid value"))
    return errors
