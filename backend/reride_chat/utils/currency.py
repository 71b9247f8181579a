"""
Currency formatting for display.

WHAT: Render whole-rupee amounts with Indian digit grouping
WHY: Offer cards and counter dialogs show prices like the listing pages do
HOW: Group the last three digits, then pairs (12,34,56,789)
"""

RUPEE_SIGN = "₹"


def group_indian(amount: int) -> str:
    """Group digits the Indian way: 2500000 -> '25,00,000'."""
    digits = str(abs(int(amount)))
    if len(digits) <= 3:
        grouped = digits
    else:
        head, tail = digits[:-3], digits[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        grouped = ",".join(pairs + [tail])
    return f"-{grouped}" if amount < 0 else grouped


def format_inr(amount: int | None) -> str | None:
    """
    Format an amount in rupees, no minor units.

    >>> format_inr(500000)
    '₹5,00,000'
    """
    if amount is None:
        return None
    sign = "-" if amount < 0 else ""
    return f"{sign}{RUPEE_SIGN}{group_indian(abs(int(amount)))}"
