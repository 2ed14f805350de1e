from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


def format_inr(paise: int) -> str:
    """Format paise as an INR string: 123450 -> '₹1,234.50'"""
    sign = "-" if paise < 0 else ""
    rupees, rest = divmod(abs(paise), 100)
    return f"{sign}₹{rupees:,}.{rest:02d}"


def parse_inr(text: str) -> int | None:
    """Parse a rupee amount string into paise. Returns None on invalid input.

    Accepts formats like '1234', '1234.5', '1,234.50', '₹1,234.50'.
    """
    text = text.strip().replace("₹", "").replace(",", "").strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
