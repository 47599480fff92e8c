# contracts/models.py
"""
Pydantic models for the RunwayTwin look engine.
These models define the data contracts for style plans, sourced products,
assembly jobs and the LookResponse handed to the presentation layer.
"""
import json
import time
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

SlotName = Literal["anchor", "top", "bottom", "dress", "outerwear", "shoe", "bag", "accessory"]
SLOT_NAMES = ("anchor", "top", "bottom", "dress", "outerwear", "shoe", "bag", "accessory")

Availability = Literal["unknown", "in_stock", "out_of_stock", "preorder"]
JobStatus = Literal["queued", "running", "partial", "complete", "failed"]
LookStatus = Literal["complete", "partial", "failed"]
TERMINAL_STATUSES = ("complete", "failed")


class PlanValidationError(ValueError):
    """
    Raised when a style plan payload is malformed.
    Distinct from a failed job: assembly never starts.
    """

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("; ".join(problems) or "invalid style plan")


# ============================================================================
# Style Plan (engine input)
# ============================================================================

class SlotPlan(BaseModel):
    """Per-slot constraints: keywords, colour allow-list, material deny-list, price band."""
    slot: SlotName
    category: str
    keywords: List[str] = []
    allowed_colors: List[str] = []
    banned_materials: List[str] = []
    min_price: float = Field(ge=0)
    max_price: float = Field(ge=0)

    @model_validator(mode="after")
    def _check_band(self):
        if self.min_price > self.max_price:
            raise ValueError(
                f"slot '{self.slot}': min_price {self.min_price} exceeds max_price {self.max_price}"
            )
        return self


class SearchQuery(BaseModel):
    slot: SlotName
    query: str


class Preferences(BaseModel):
    model_config = ConfigDict(extra="allow")

    gender: Optional[Literal["female", "male", "unisex"]] = None
    country: Optional[str] = None
    body_type: Optional[str] = None
    sizes: Dict[str, str] = {}
    keywords: List[str] = []
    prompt: Optional[str] = None


class StylePlan(BaseModel):
    """
    The structured brief the engine consumes.
    Produced upstream by the style-plan generator.
    """
    look_id: str = Field(min_length=1)
    required_slots: List[SlotName] = Field(min_length=1)
    per_slot: List[SlotPlan] = Field(min_length=1)
    budget_total: float = Field(ge=0)
    currency: str = "EUR"
    retailer_priority: List[str] = []
    search_queries: List[SearchQuery] = []
    preferences: Preferences = Field(default_factory=Preferences)
    aesthetic_read: Optional[str] = None

    @model_validator(mode="after")
    def _check_required_slots(self):
        planned = {sp.slot for sp in self.per_slot}
        missing = [slot for slot in self.required_slots if slot not in planned]
        if missing:
            raise ValueError(f"required slots without per-slot constraints: {', '.join(missing)}")
        return self

    def slot_plan(self, slot: str) -> Optional[SlotPlan]:
        for sp in self.per_slot:
            if sp.slot == slot:
                return sp
        return None

    def query_for(self, slot: str) -> Optional[str]:
        for sq in self.search_queries:
            if sq.slot == slot and sq.query.strip():
                return sq.query.strip()
        return None


def parse_style_plan(payload: Union[str, bytes, Dict[str, Any], StylePlan]) -> StylePlan:
    """
    Validate a raw style plan payload.

    Raises:
        PlanValidationError: if the payload is not valid JSON or misses/violates fields
    """
    if isinstance(payload, StylePlan):
        return payload
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise PlanValidationError([f"style plan is not valid JSON: {e.msg}"])
    if not isinstance(payload, dict):
        raise PlanValidationError(["style plan must be a JSON object"])

    try:
        return StylePlan.model_validate(payload)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            location = ".".join(str(part) for part in err.get("loc", ()))
            message = err.get("msg", "invalid value")
            problems.append(f"{location}: {message}" if location else message)
        raise PlanValidationError(problems)


# ============================================================================
# Products
# ============================================================================

class FitDescriptor(BaseModel):
    category: Optional[str] = None
    gender: Optional[Literal["female", "male", "unisex"]] = None
    sizes: List[str] = []


class Product(BaseModel):
    """
    A normalized external offering from any source adapter.
    A missing price means "unscored on price", not "free".
    """
    id: str
    title: str
    brand: Optional[str] = None
    retailer: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    url: str
    image_url: Optional[str] = None
    availability: Availability = "unknown"
    fit: FitDescriptor = Field(default_factory=FitDescriptor)

    # Assembly metadata
    slot: Optional[SlotName] = None
    source: Optional[str] = None
    affiliate_url: Optional[str] = None


class ScoredCandidate(BaseModel):
    """Ephemeral pairing used only while ranking."""
    product: Product
    score: float


# ============================================================================
# Adapter I/O
# ============================================================================

class SearchProductsArgs(BaseModel):
    query: str = ""
    url: Optional[str] = None
    slot: Optional[SlotName] = None
    category: Optional[str] = None
    country: Optional[str] = None
    currency: Optional[str] = None
    gender: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    limit: int = 8


class SearchResult(BaseModel):
    """
    `items == []` means the adapter ran and found nothing.
    Adapters return None instead when they are not configured.
    """
    items: List[Product] = []
    source: str
    latency: float = 0.0  # milliseconds
    meta: Dict[str, Any] = {}


class StockResult(BaseModel):
    availability: Availability = "unknown"
    source: str
    url: Optional[str] = None


class AffiliateLinkArgs(BaseModel):
    url: str
    retailer: Optional[str] = None
    country: Optional[str] = None


class AffiliateLinkResult(BaseModel):
    url: str
    retailer: Optional[str] = None
    source: Optional[str] = None


# ============================================================================
# Engine output and job state
# ============================================================================

class LookResponse(BaseModel):
    look_id: str
    status: LookStatus
    message: str
    slots: List[Product] = []
    total_price: Optional[float] = None
    currency: str
    missing_slots: List[SlotName] = []
    note: Optional[str] = None


class JobError(BaseModel):
    retailer: str
    slot: Optional[str] = None
    message: str


class SlotProgress(BaseModel):
    attempts: int = 0
    candidates: int = 0
    timeouts: int = 0
    errors: int = 0
    resolved: bool = False
    relaxed: bool = False


class Job(BaseModel):
    """
    Mutable record of one assembly run.
    Becomes immutable once status is complete or failed.
    """
    id: str
    fingerprint: str
    status: JobStatus = "queued"
    progress: Dict[str, SlotProgress] = {}
    errors: List[JobError] = []
    result: Optional[LookResponse] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    heartbeat_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
