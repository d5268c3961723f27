"""Amount encoding for the payment providers"""

from decimal import Decimal
from typing import Union

from app.errors import BadRequest


def clean_amount_for_topup(amount: Union[Decimal, float, int, str]) -> int:
    """Encode an amount as the integer minor units the providers expect.

    The decimal point is dropped and the digits are kept as they are, with the
    fraction padded to two places: ``12.5 -> 1250``, ``12.50 -> 1250`` and
    ``100 -> 10000``.
    """
    text = str(amount).strip().replace(",", "")
    whole, dot, fraction = text.partition(".")

    if not whole.isdigit() or (fraction and not fraction.isdigit()):
        raise BadRequest("INVALID_AMOUNT")

    if dot:
        fraction = fraction.ljust(2, "0")
    else:
        fraction = "00"

    return int(whole + fraction)
