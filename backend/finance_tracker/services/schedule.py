from calendar import monthrange
from datetime import date, timedelta

CYCLE_MONTHS = {"monthly": 1, "quarterly": 3, "yearly": 12}

# Average weeks per month used to turn a weekly charge into a monthly one.
WEEKS_PER_MONTH = 52 / 12


def add_months(base: date, months: int) -> date:
    total_month = (base.month - 1) + months
    year = base.year + total_month // 12
    month = (total_month % 12) + 1
    day = min(base.day, monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)


def month_start(base: date, months_back: int = 0) -> date:
    return add_months(base.replace(day=1), -months_back)


def next_payment_date(cycle: str, start: date) -> date:
    if cycle == "weekly":
        return start + timedelta(days=7)
    return add_months(start, CYCLE_MONTHS.get(cycle, 1))


def monthly_equivalent(amount: float, cycle: str | None) -> float:
    if cycle == "weekly":
        return amount * WEEKS_PER_MONTH
    if cycle == "quarterly":
        return amount / 3
    if cycle == "yearly":
        return amount / 12
    return amount
