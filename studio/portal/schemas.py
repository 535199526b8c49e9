"""Request bodies for the JSON API."""
from datetime import date
from decimal import Decimal
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, Field, model_validator

ProjectStatus = Literal["consultation", "vision_board", "ordering", "installation", "styling", "complete"]
ClientStatus = Literal["inquiry", "consultation", "contract", "active", "completed"]
TaskStatus = Literal["pending", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]
TaskCategory = Literal["consultation", "design", "ordering", "installation", "communication", "administrative"]
ExpenseCategory = Literal["materials", "labor", "transportation", "permits", "other"]
ReturnStatus = Literal["pending", "processed", "refunded", "exchanged", "completed"]
ContractType = Literal["proposal", "design_contract", "amendment", "completion_certificate"]
ContractStatus = Literal["draft", "sent", "viewed", "signed", "completed"]
StaffRole = Literal["business_owner", "team_member"]


class PatchModel(BaseModel):
    """
    PATCH body: omitted fields are left alone. An explicit `null` is only
    accepted for fields in `nullable`, which map to nullable columns.
    """
    nullable: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required(self):
        bad = sorted(
            name for name in self.model_fields_set
            if name not in self.nullable and getattr(self, name) is None
        )
        if bad:
            raise ValueError(f"{', '.join(bad)} cannot be null")
        return self


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: str
    password: str


class SignUpRequest(BaseModel):
    email: str
    password: str = Field(min_length=8)
    full_name: str
    phone: str = ""


class RecoverRequest(BaseModel):
    email: str


class ResetRequest(BaseModel):
    token: str
    password: str = Field(min_length=8)


class StaffUserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8)
    full_name: str
    role: StaffRole = "team_member"


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class ClientCreate(BaseModel):
    name: str
    email: str
    phone: str = ""
    status: ClientStatus = "inquiry"
    budget: Decimal = Decimal("0")
    move_in_date: Optional[date] = None
    reveal_date: Optional[date] = None
    style_preferences: list[str] = []
    notes: str = ""
    lead_source: str = ""
    address: Optional[str] = None


class ClientUpdate(PatchModel):
    nullable: ClassVar[frozenset[str]] = frozenset(["move_in_date", "reveal_date", "address"])

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[ClientStatus] = None
    budget: Optional[Decimal] = None
    move_in_date: Optional[date] = None
    reveal_date: Optional[date] = None
    style_preferences: Optional[list[str]] = None
    notes: Optional[str] = None
    lead_source: Optional[str] = None
    address: Optional[str] = None


# ---------------------------------------------------------------------------
# Projects / tasks
# ---------------------------------------------------------------------------

class ProjectCreate(BaseModel):
    client_id: str
    name: str
    status: ProjectStatus = "consultation"
    budget: Decimal = Decimal("0")
    start_date: Optional[date] = None
    expected_completion: Optional[date] = None
    description: str = ""
    rooms: list[str] = []


class ProjectUpdate(PatchModel):
    nullable: ClassVar[frozenset[str]] = frozenset(["start_date", "expected_completion"])

    name: Optional[str] = None
    status: Optional[ProjectStatus] = None
    budget: Optional[Decimal] = None
    start_date: Optional[date] = None
    expected_completion: Optional[date] = None
    description: Optional[str] = None
    rooms: Optional[list[str]] = None


class TaskCreate(BaseModel):
    project_id: Optional[str] = None
    client_id: Optional[str] = None
    title: str
    description: str = ""
    status: TaskStatus = "pending"
    priority: TaskPriority = "medium"
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    category: TaskCategory = "administrative"
    visible_to_client: bool = False


class TaskUpdate(PatchModel):
    nullable: ClassVar[frozenset[str]] = frozenset(["due_date", "assigned_to"])

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    category: Optional[TaskCategory] = None
    visible_to_client: Optional[bool] = None


# ---------------------------------------------------------------------------
# Expenses / returns
# ---------------------------------------------------------------------------

class ExpenseItem(BaseModel):
    name: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")


class ExpenseCreate(BaseModel):
    project_id: str
    title: str
    description: str = ""
    items: list[ExpenseItem] = []
    expense_date: date
    category: ExpenseCategory = "materials"
    notes: str = ""


class ExpenseUpdate(PatchModel):
    title: Optional[str] = None
    description: Optional[str] = None
    items: Optional[list[ExpenseItem]] = None
    expense_date: Optional[date] = None
    category: Optional[ExpenseCategory] = None
    notes: Optional[str] = None


class ReturnItem(BaseModel):
    name: str
    quantity: int = 1
    unit_price: Optional[Decimal] = None


class ReturnCreate(BaseModel):
    project_id: str
    items: list[ReturnItem] = []
    reason: str
    status: ReturnStatus = "pending"
    amount: Optional[Decimal] = None
    return_date: date
    notes: str = ""


class ReturnUpdate(PatchModel):
    nullable: ClassVar[frozenset[str]] = frozenset(["amount", "processed_date"])

    items: Optional[list[ReturnItem]] = None
    reason: Optional[str] = None
    status: Optional[ReturnStatus] = None
    amount: Optional[Decimal] = None
    return_date: Optional[date] = None
    processed_date: Optional[date] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Contracts / files
# ---------------------------------------------------------------------------

class ContractCreate(BaseModel):
    client_id: str
    project_id: Optional[str] = None
    title: str
    type: ContractType = "proposal"
    value: Optional[Decimal] = None
    description: str = ""


class ContractUpdate(PatchModel):
    nullable: ClassVar[frozenset[str]] = frozenset(["value", "signed_by"])

    title: Optional[str] = None
    type: Optional[ContractType] = None
    status: Optional[ContractStatus] = None
    value: Optional[Decimal] = None
    description: Optional[str] = None
    signed_by: Optional[str] = None


class UploadRequest(BaseModel):
    filename: str
    content_type: str
    room: Optional[str] = None
    description: str = ""
    is_visionboard: bool = False
