from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from cardpoints.domain.models import AmountRounding, PointsRounding

_POINTS_MODES = {
    PointsRounding.FLOOR: ROUND_FLOOR,
    PointsRounding.CEILING: ROUND_CEILING,
    PointsRounding.NEAREST: ROUND_HALF_UP,
}


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 47.5 as 47.5 instead of its binary expansion.
    return Decimal(str(value))


def effective_units(amount: float, block_size: float, strategy: AmountRounding) -> Decimal:
    units = to_decimal(amount) / to_decimal(block_size)
    if strategy == AmountRounding.FLOOR:
        return units.to_integral_value(rounding=ROUND_FLOOR)
    if strategy == AmountRounding.CEILING:
        return units.to_integral_value(rounding=ROUND_CEILING)
    return units


def round_points(points: Decimal, strategy: PointsRounding) -> int:
    return int(points.to_integral_value(rounding=_POINTS_MODES[strategy]))


def points_for(
    units: Decimal,
    block_size: float,
    multiplier: float,
    strategy: PointsRounding,
) -> int:
    raw = units * to_decimal(block_size) * to_decimal(multiplier)
    return round_points(raw, strategy)
