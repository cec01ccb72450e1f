"""
Placement fee and collaborator split arithmetic.

All money values are integer cents. Percentages are expressed on a 0-100
scale and may carry decimals (e.g. 22.5). Rounding is half-up to the cent.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from core.exceptions import ValidationError

HUNDRED = Decimal("100")

# Default weighting when suggesting splits for a set of collaborator roles
ROLE_WEIGHTS: dict[str, int] = {
    "sourcer": 40,
    "submitter": 30,
    "closer": 20,
    "support": 10,
}


@dataclass(frozen=True)
class FeeSplit:
    """Result of distributing a placement fee across collaborators."""

    fee_amount: int
    shares: list[int] = field(default_factory=list)
    platform_share: int = 0

    @property
    def distributed(self) -> int:
        return sum(self.shares)


def _decimal(value: int | float | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_cents(value: Decimal) -> int:
    """Round a decimal amount of cents to a whole cent, half-up."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_percentage(value: int | float | Decimal, name: str = "percentage") -> Decimal:
    pct = _decimal(value)
    if pct < 0 or pct > HUNDRED:
        raise ValidationError(
            f"{name} must be between 0 and 100",
            details={"field": name, "value": str(value)},
        )
    return pct


def validate_split_total(percentages: Iterable[int | float | Decimal]) -> Decimal:
    """
    Validate a set of split percentages.

    Returns:
        The total percentage allocated

    Raises:
        ValidationError: If any percentage is out of range or the total exceeds 100
    """
    total = Decimal("0")
    for pct in percentages:
        total += validate_percentage(pct, "split_percentage")
    if total > HUNDRED:
        raise ValidationError(
            f"Split percentages total {total}%, which exceeds 100%",
            details={"total_percentage": str(total)},
        )
    return total


def compute_fee_amount(salary: int, fee_percentage: int | float | Decimal) -> int:
    """fee_amount = round(salary * fee_percentage / 100)."""
    if salary < 0:
        raise ValidationError("salary must not be negative", details={"field": "salary"})
    pct = validate_percentage(fee_percentage, "fee_percentage")
    return round_cents(Decimal(salary) * pct / HUNDRED)


def compute_share(fee_amount: int, percentage: int | float | Decimal) -> int:
    """Share of a fee for a single split percentage."""
    pct = validate_percentage(percentage, "split_percentage")
    return round_cents(Decimal(fee_amount) * pct / HUNDRED)


def compute_fee_split(
    salary: int,
    fee_percentage: int | float | Decimal,
    split_percentages: Sequence[int | float | Decimal],
) -> FeeSplit:
    """
    Compute a placement fee and distribute it across collaborators.

    Each collaborator receives round(fee_amount * split / 100); the platform
    keeps whatever is left so shares and platform_share always add up to
    fee_amount exactly.

    Args:
        salary: Annual salary in cents
        fee_percentage: Placement fee percentage of salary
        split_percentages: One percentage per collaborator

    Returns:
        FeeSplit with per-collaborator shares in input order

    Raises:
        ValidationError: If the splits sum to more than 100%
    """
    validate_split_total(split_percentages)
    fee_amount = compute_fee_amount(salary, fee_percentage)
    shares = [compute_share(fee_amount, pct) for pct in split_percentages]

    # Half-up rounding on every share can overshoot the fee by a cent or two
    overshoot = sum(shares) - fee_amount
    index = len(shares) - 1
    while overshoot > 0 and index >= 0:
        take = min(overshoot, shares[index])
        shares[index] -= take
        overshoot -= take
        index -= 1

    return FeeSplit(
        fee_amount=fee_amount,
        shares=shares,
        platform_share=fee_amount - sum(shares),
    )


def suggest_split_percentages(roles: Sequence[str]) -> list[float]:
    """
    Suggest split percentages for collaborator roles using ROLE_WEIGHTS.

    Percentages are proportional to the role weights, rounded to two decimals,
    with the rounding remainder applied to the last role so they total 100.
    """
    if not roles:
        return []

    unknown = [role for role in roles if role not in ROLE_WEIGHTS]
    if unknown:
        raise ValidationError(
            f"Unknown collaborator role(s): {', '.join(unknown)}",
            details={"allowed_roles": sorted(ROLE_WEIGHTS)},
        )

    weights = [Decimal(ROLE_WEIGHTS[role]) for role in roles]
    total = sum(weights)
    suggested = [
        (weight * HUNDRED / total).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        for weight in weights
    ]
    suggested[-1] = HUNDRED - sum(suggested[:-1])
    return [float(pct) for pct in suggested]
