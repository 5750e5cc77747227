"""
Data Transfer Objects (DTOs).
Used for passing data between layers without exposing domain models.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, List, Any


@dataclass
class LeaseDTO:
    """Data Transfer Object for Lease"""
    id: Optional[int] = None
    agency_id: int = None
    property_ref: str = ""
    tenant_ref: str = ""
    start_date: date = None
    end_date: Optional[date] = None
    rent_amount: int = 0
    payment_day_of_month: int = 1
    notes: str = ""


@dataclass
class PaymentDTO:
    """Normalized incoming payment, before it is recorded"""
    lease_id: int = None
    amount: int = 0
    paid_at: Any = None
    method: str = "MANUAL"
    reference_number: str = ""
    invoice_id: Optional[int] = None
    notes: str = ""


@dataclass(frozen=True)
class Allocation:
    """One (invoice, applied amount) pair produced by the matcher"""
    invoice_id: int
    applied_amount: int


@dataclass
class MatchResult:
    """Outcome of applying a payment"""
    payment: Any
    allocations: List[Allocation] = field(default_factory=list)
    unapplied: int = 0

    @property
    def applied(self) -> int:
        return sum(a.applied_amount for a in self.allocations)

    @property
    def is_fully_applied(self) -> bool:
        return self.unapplied == 0

    def as_pairs(self):
        return [(a.invoice_id, a.applied_amount) for a in self.allocations]


@dataclass
class GenerationSummary:
    """Result of a batch invoice generation run"""
    year: int
    month: int
    created: List[int] = field(default_factory=list)
    already_billed: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total_leases(self) -> int:
        return len(self.created) + len(self.already_billed) + len(self.skipped)
