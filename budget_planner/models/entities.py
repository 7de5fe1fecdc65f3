"""
Core Data Models for Budget Planner

These models define the schemas for every entity exchanged with the
remote API and kept in the local cache:
1. Plans own their months and one-off transactions
2. Budgets, assets and debts are independent entities that plans
   and budget expenses only reference by id
3. Every model round-trips through the camelCase wire format

DESIGN DECISION: Numeric fields are normalized at validation time.
The API has historically returned balances as text ("1500.00"), so
every amount is coerced to a float before any calculation sees it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


TEMPORARY_ID_PREFIX = "temp-"

MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def new_entity_id() -> str:
    return str(uuid4())


def new_temporary_id() -> str:
    """Id for a transaction that has not been saved yet."""
    return f"{TEMPORARY_ID_PREFIX}{uuid4().hex}"


def coerce_number(value: Any) -> Any:
    """
    Normalize a numeric field that may arrive as text.

    Blank text and None become 0; anything else non-numeric is left
    for pydantic to reject.
    """
    if value is None:
        return 0.0
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        return float(text) if text else 0.0
    return value


# =============================================================================
# ENUMS
# =============================================================================

class EntityType(str, Enum):
    """
    Entity collections the client caches, one snapshot per user each.

    The value doubles as the storage key segment and the API path.
    """
    PLANS = "plans"
    BUDGETS = "budgets"
    ASSETS = "assets"
    DEBTS = "debts"
    USERS = "users"

    @property
    def version_field(self) -> Optional[str]:
        """Name of this type's counter in the server version vector."""
        if self is EntityType.USERS:
            return None
        return f"{self.value}_version"


# Entity types tracked by the server version vector
VERSIONED_ENTITY_TYPES = (
    EntityType.BUDGETS,
    EntityType.PLANS,
    EntityType.ASSETS,
    EntityType.DEBTS,
)


class TransactionKind(str, Enum):
    """What a one-off plan transaction adjusts."""
    ASSET = "asset"
    DEBT = "debt"


class ExpenseKind(str, Enum):
    """
    Budget expense classification.

    Linked kinds move money into an asset or towards a debt rather
    than out of the household.
    """
    REGULAR = "regular"
    ASSET_DEPOSIT = "asset"
    DEBT_PAYMENT = "debt"


# =============================================================================
# BASE
# =============================================================================

class WireModel(BaseModel):
    """Base for models exchanged with the API in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict in the API's field naming."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# PLAN MODELS
# =============================================================================

class TargetRef(BaseModel):
    """
    The asset or debt a transaction adjusts.

    Built at the UI boundary so the engine never parses
    "kind-id" strings itself.
    """
    model_config = ConfigDict(frozen=True)

    kind: TransactionKind
    id: str

    @classmethod
    def parse(cls, composite: str) -> "TargetRef":
        """
        Parse a "<kind>-<id>" selector value.

        Only the first dash separates the kind; ids themselves may
        contain dashes. A value without a recognised kind prefix is
        treated as a bare asset id.
        """
        composite = (composite or "").strip()
        prefix, sep, rest = composite.partition("-")
        if sep and prefix in {kind.value for kind in TransactionKind}:
            return cls(kind=TransactionKind(prefix), id=rest)
        return cls(kind=TransactionKind.ASSET, id=composite)

    @property
    def composite(self) -> str:
        return f"{self.kind.value}-{self.id}"


class Transaction(WireModel):
    """
    A one-off adjustment to an asset or debt in a single plan month.

    Unsaved transactions carry a temporary id and is_editing=True.
    """

    id: str = Field(default_factory=new_temporary_id)
    kind: TransactionKind = Field(
        default=TransactionKind.ASSET,
        alias="type",
        description="Whether target_id names an asset or a debt"
    )
    target_id: str = Field(default="")
    amount: float = Field(default=0.0)
    description: str = Field(default="", max_length=500)
    is_editing: bool = Field(default=False)

    @field_validator('amount', mode='before')
    @classmethod
    def normalize_amount(cls, v: Any) -> Any:
        return coerce_number(v)

    @field_validator('description', 'target_id', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMPORARY_ID_PREFIX)

    @property
    def target(self) -> Optional[TargetRef]:
        if not self.target_id:
            return None
        return TargetRef(kind=self.kind, id=self.target_id)

    def targets(self, kind: TransactionKind, entity_id: str) -> bool:
        return self.kind == kind and self.target_id == entity_id


class MonthRecord(WireModel):
    """One calendar month's slot within a plan."""

    month: str = Field(
        ...,
        pattern=MONTH_KEY_PATTERN,
        description="Calendar month as YYYY-MM"
    )
    budget_id: Optional[str] = Field(
        default=None,
        description="Budget applied to this month, if any"
    )
    net_worth: float = Field(default=0.0)
    transactions: list[Transaction] = Field(default_factory=list)

    @field_validator('budget_id', mode='before')
    @classmethod
    def blank_budget_is_none(cls, v: Any) -> Any:
        return v or None

    @field_validator('net_worth', mode='before')
    @classmethod
    def normalize_net_worth(cls, v: Any) -> Any:
        return coerce_number(v)

    @field_validator('transactions', mode='before')
    @classmethod
    def none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


class Plan(WireModel):
    """
    A named 24-month financial forecast.

    The window invariant (24 contiguous months starting next month)
    is enforced by the rolling-window aligner rather than at parse
    time, so a damaged plan from the server can still be loaded and
    repaired.
    """

    id: str = Field(default_factory=new_entity_id)
    user_id: str = Field(default="")
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    is_active: bool = Field(default=False)
    months: list[MonthRecord] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('description', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator('months', mode='before')
    @classmethod
    def none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def month_index(self, month_key: str) -> int:
        """Index of month_key in the window, or -1."""
        for index, record in enumerate(self.months):
            if record.month == month_key:
                return index
        return -1

    def touch(self) -> None:
        self.updated_at = utc_now()


# =============================================================================
# BUDGET MODELS
# =============================================================================

class LineItem(WireModel):
    """A single income or expense line of a budget."""

    id: str = Field(default_factory=new_entity_id)
    name: str = Field(default="")
    amount: float = Field(default=0.0)
    category: str = Field(default="")

    @field_validator('amount', mode='before')
    @classmethod
    def normalize_amount(cls, v: Any) -> Any:
        return coerce_number(v)


class ExpenseItem(LineItem):
    """
    Budget expense, optionally linked to an asset or debt.

    A linked expense is a deposit or payment: it grows an asset or
    shrinks a debt instead of reducing net worth.
    """

    kind: ExpenseKind = Field(default=ExpenseKind.REGULAR, alias="type")
    linked_asset_id: Optional[str] = None
    linked_debt_id: Optional[str] = None

    @field_validator('kind', mode='before')
    @classmethod
    def missing_kind_is_regular(cls, v: Any) -> Any:
        return v or ExpenseKind.REGULAR

    @property
    def target_id(self) -> Optional[str]:
        if self.kind is ExpenseKind.ASSET_DEPOSIT:
            return self.linked_asset_id
        if self.kind is ExpenseKind.DEBT_PAYMENT:
            return self.linked_debt_id
        return None


class Budget(WireModel):
    """A reusable monthly budget that plan months reference by id."""

    id: str = Field(default_factory=new_entity_id)
    user_id: str = Field(default="")
    name: str = Field(default="")
    is_active: bool = Field(default=False)
    income: list[LineItem] = Field(default_factory=list)
    expenses: list[ExpenseItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_income(self) -> float:
        return sum(item.amount for item in self.income)

    @property
    def total_regular_expenses(self) -> float:
        return sum(
            item.amount for item in self.expenses
            if item.kind is ExpenseKind.REGULAR
        )

    def deposits_to(self, asset_id: str) -> float:
        """Sum of expenses linked as deposits into asset_id."""
        return sum(
            item.amount for item in self.expenses
            if item.kind is ExpenseKind.ASSET_DEPOSIT
            and item.linked_asset_id == asset_id
        )

    def payments_to(self, debt_id: str) -> float:
        """Sum of expenses linked as payments towards debt_id."""
        return sum(
            item.amount for item in self.expenses
            if item.kind is ExpenseKind.DEBT_PAYMENT
            and item.linked_debt_id == debt_id
        )


# =============================================================================
# BALANCE SHEET MODELS
# =============================================================================

class Asset(WireModel):
    """Something the user owns, valued at current_value."""

    id: str = Field(default_factory=new_entity_id)
    user_id: str = Field(default="")
    name: str = Field(default="")
    current_value: float = Field(default=0.0)
    annual_apy: float = Field(default=0.0, alias="annualAPY")
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('current_value', 'annual_apy', mode='before')
    @classmethod
    def normalize_numbers(cls, v: Any) -> Any:
        return coerce_number(v)


class Debt(WireModel):
    """Something the user owes, with current_balance outstanding."""

    id: str = Field(default_factory=new_entity_id)
    user_id: str = Field(default="")
    name: str = Field(default="")
    current_balance: float = Field(default=0.0)
    interest_rate: float = Field(default=0.0)
    minimum_payment: float = Field(default=0.0)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        'current_balance', 'interest_rate', 'minimum_payment', mode='before'
    )
    @classmethod
    def normalize_numbers(cls, v: Any) -> Any:
        return coerce_number(v)


class User(WireModel):
    """The signed-in user's profile."""

    id: str
    display_name: str = Field(default="")
    email: str = Field(default="")
    birthday_string: Optional[str] = None
    retirement_age: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserVersions(WireModel):
    """
    Server-side version vector.

    Each counter increases whenever any entity of that type changes
    for the user.
    """

    global_version: int = Field(default=0, ge=0)
    budgets_version: int = Field(default=0, ge=0)
    plans_version: int = Field(default=0, ge=0)
    assets_version: int = Field(default=0, ge=0)
    debts_version: int = Field(default=0, ge=0)

    def for_entity(self, entity_type: EntityType) -> int:
        field_name = entity_type.version_field
        if field_name is None:
            return self.global_version
        return getattr(self, field_name)
