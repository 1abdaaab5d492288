"""Result types separating the core transaction outcome from auxiliary side effects."""
from dataclasses import dataclass, field

from schemas.order import OrderRead
from schemas.product import ProductRead
from services.exceptions import SideEffectFailure


@dataclass
class SideEffectOutcome:
    """Outcome of one best-effort side effect."""

    name: str
    succeeded: bool
    error: SideEffectFailure | None = None


@dataclass
class OrderResult:
    """A committed order plus the outcome of each post-commit side effect."""

    order: OrderRead
    side_effects: list[SideEffectOutcome] = field(default_factory=list)

    @property
    def side_effects_ok(self) -> bool:
        """True when every side effect succeeded (or none ran)."""
        return all(outcome.succeeded for outcome in self.side_effects)


@dataclass
class ProductResult:
    """A written product plus the outcome of the search-index sync."""

    product: ProductRead
    side_effects: list[SideEffectOutcome] = field(default_factory=list)

    @property
    def side_effects_ok(self) -> bool:
        """True when every side effect succeeded (or none ran)."""
        return all(outcome.succeeded for outcome in self.side_effects)
