import random
from datetime import datetime, timezone

ORDER_NUMBER_PREFIX = "LC"

def generate_order_number(now: datetime | None = None) -> str:
    """LC-20261019-482913"""
    now = now or datetime.now(timezone.utc)
    return f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{random.randint(100000, 999999)}"
