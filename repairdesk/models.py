from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

UNKNOWN_UNIT = "Unknown Unit"
UNSPECIFIED_PROBLEM = "Not specified"
LOG_DISPLAY_LIMIT = 10


class TicketType(str, Enum):
    free_checkup = "Free Checkup"
    repair = "Repair"


class TicketStatus(str, Enum):
    pending = "Pending"
    ongoing = "Ongoing"
    completed = "Completed"
    returned = "Return"


class CustomerFields(BaseModel):
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    suffix: Optional[str] = None
    contact_number: Optional[str] = None


class CustomerOut(BaseModel):
    id: int
    first_name: str
    middle_name: str = ""
    last_name: str
    suffix: Optional[str] = None
    contact_number: str
    created_at: datetime


class LogEntryOut(BaseModel):
    id: str
    text: str
    author: str
    created_at: datetime


class TicketOut(BaseModel):
    ticket_number: str
    ticket_type: TicketType
    customer: Optional[CustomerOut] = None
    unit: str
    problem: str
    status: TicketStatus
    images: List[str] = Field(default_factory=list)
    logs: List[LogEntryOut] = Field(default_factory=list)
    qr_code_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PublicCustomer(BaseModel):
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    suffix: str = ""


class PublicLogEntry(BaseModel):
    text: str = ""
    created_at: Optional[datetime] = None


class PublicView(BaseModel):
    ticket_number: str = ""
    customer: PublicCustomer = Field(default_factory=PublicCustomer)
    unit: str = ""
    problem: str = ""
    status: str = ""
    images: List[str] = Field(default_factory=list)
    logs: List[PublicLogEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    qr_code_url: str = ""


class CreatedTicket(BaseModel):
    ticket: TicketOut
    check_url: str
    qr_code_url: Optional[str] = None
    qr_error: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str
    unit: Optional[str] = None
    problem: Optional[str] = None


class LogRequest(BaseModel):
    log: str


class TicketDetailsRequest(CustomerFields):
    unit: Optional[str] = None
    problem: Optional[str] = None


class SignupRequest(BaseModel):
    username: str
    password: str
    role: str = "tech"  # admin | tech | staff (admin/staff only via an existing admin)


class LoginRequest(BaseModel):
    username: str
    password: str
