"""Read-only aggregations over the income and outgoing tables.

Nothing here is cached: every call recomputes from the current table
contents. ``today`` is injectable so the calendar-relative windows can be
pinned in tests.
"""
from __future__ import annotations

from datetime import date
from typing import Any

from ..config import RECENT_LIMIT, UNCATEGORIZED
from ..errors import RecordValidationError
from ..store import Store
from .schedule import month_start, monthly_equivalent

# Trend changes within this many percent either way count as flat.
TREND_THRESHOLD = 5.0

CATEGORY_EXPR = f"coalesce(nullif(trim(category), ''), '{UNCATEGORIZED}')"


def _parse_day(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise RecordValidationError(f"{field}: invalid date {value!r}") from None


def _outgoing_row(row: dict[str, Any]) -> dict[str, Any]:
    row["recurring"] = bool(row.get("recurring"))
    return row


def balance_projection(current_balance: float, avg_income: float, avg_outgoing: float, subscriptions: float) -> dict[str, float]:
    monthly_net = avg_income - avg_outgoing - subscriptions
    weekly_net = monthly_net / 4
    return {
        "week": current_balance + weekly_net,
        "month": current_balance + monthly_net,
        "threeMonths": current_balance + monthly_net * 3,
    }


def category_trends(recent: list[dict[str, Any]], previous: list[dict[str, Any]]) -> list[dict[str, Any]]:
    previous_totals = {row["category"]: row["total"] for row in previous}
    trends = []
    for row in recent:
        before = previous_totals.get(row["category"])
        if not before:
            trends.append({"category": row["category"], "trend": 0.0, "direction": "neutral"})
            continue
        change = (row["total"] - before) / before * 100
        if change > TREND_THRESHOLD:
            direction = "up"
        elif change < -TREND_THRESHOLD:
            direction = "down"
        else:
            direction = "neutral"
        trends.append({"category": row["category"], "trend": round(abs(change), 1), "direction": direction})
    return trends


def savings_rate(avg_income: float, avg_outgoing: float) -> float:
    if not avg_income:
        return 0.0
    return round((avg_income - avg_outgoing) / avg_income * 100, 1)


class Analytics:
    def __init__(self, store: Store) -> None:
        self.store = store

    def _total(self, table: str, where: str = "", params: dict[str, Any] | None = None) -> float:
        rows = self.store.run(f"select coalesce(sum(amount), 0) as total from {table} {where}", params)
        return rows[0]["total"]

    def _monthly(self, table: str, year: str) -> list[dict[str, Any]]:
        return self.store.run(
            f"""
            select substr(date, 1, 7) as _id, sum(amount) as total
            from {table}
            where substr(date, 1, 4) = :year
            group by substr(date, 1, 7)
            order by _id asc
            """,
            {"year": year},
        )

    def _average_month(self, table: str) -> float:
        rows = self.store.run(
            f"""
            select avg(monthly_total) as avg from (
              select sum(amount) as monthly_total from {table} group by substr(date, 1, 7)
            )
            """
        )
        return rows[0]["avg"] or 0.0

    def _categories(self, where: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        return self.store.run(
            f"""
            select {CATEGORY_EXPR} as category, sum(amount) as total
            from outgoing
            where {where}
            group by {CATEGORY_EXPR}
            order by total desc, category asc
            """,
            params,
        )

    def dashboard_summary(self, today: date | None = None) -> dict[str, Any]:
        today = today or date.today()
        year = f"{today.year:04d}"
        total_income = self._total("income")
        total_outgoing = self._total("outgoing")
        recent_income = self.store.run(
            "select * from income order by createdAt desc, id desc limit :limit", {"limit": RECENT_LIMIT}
        )
        recent_outgoing = self.store.run(
            "select * from outgoing order by createdAt desc, id desc limit :limit", {"limit": RECENT_LIMIT}
        )
        return {
            "totalIncome": total_income,
            "totalOutgoing": total_outgoing,
            "balance": total_income - total_outgoing,
            "recentIncome": recent_income,
            "recentOutgoing": [_outgoing_row(row) for row in recent_outgoing],
            "monthlyIncome": self._monthly("income", year),
            "monthlyOutgoing": self._monthly("outgoing", year),
        }

    def history_for_range(self, start: Any, end: Any) -> dict[str, Any]:
        start_day = _parse_day(start, "startDate")
        end_day = _parse_day(end, "endDate")
        if start_day > end_day:
            return {
                "income": [],
                "outgoing": [],
                "incomeTotal": 0,
                "outgoingTotal": 0,
                "net": 0,
                "categoryBreakdown": [],
            }
        params = {"start": start_day.isoformat(), "end": end_day.isoformat()}
        in_range = "where date between :start and :end"
        income = self.store.run(f"select * from income {in_range} order by date desc, id desc", params)
        outgoing = self.store.run(f"select * from outgoing {in_range} order by date desc, id desc", params)
        income_total = self._total("income", in_range, params)
        outgoing_total = self._total("outgoing", in_range, params)
        return {
            "income": income,
            "outgoing": [_outgoing_row(row) for row in outgoing],
            "incomeTotal": income_total,
            "outgoingTotal": outgoing_total,
            "net": income_total - outgoing_total,
            "categoryBreakdown": self._categories("date between :start and :end", params),
        }

    def predictions(self, today: date | None = None) -> dict[str, Any]:
        today = today or date.today()
        subscriptions = [
            _outgoing_row(row)
            for row in self.store.run(
                """
                select * from outgoing
                where recurring = 1
                order by nextPaymentDate is null, nextPaymentDate asc, id asc
                """
            )
        ]
        avg_income = self._average_month("income")
        avg_outgoing = self._average_month("outgoing")

        three_months_ago = month_start(today, 3).isoformat()
        six_months_ago = month_start(today, 6).isoformat()
        recent = self._categories("date >= :since", {"since": three_months_ago})
        previous = self._categories(
            "date >= :since and date < :until", {"since": six_months_ago, "until": three_months_ago}
        )

        current_balance = self._total("income") - self._total("outgoing")
        # Only monthly cycles count here; the normalized figure below covers the rest.
        subscription_total = sum(s["amount"] or 0 for s in subscriptions if s.get("billingCycle") == "monthly")
        subscription_equivalent = sum(
            monthly_equivalent(s["amount"] or 0, s.get("billingCycle")) for s in subscriptions
        )
        return {
            "subscriptions": subscriptions,
            "avgMonthlyIncome": avg_income,
            "avgMonthlyOutgoing": avg_outgoing,
            "recentCategories": recent,
            "previousCategories": previous,
            "currentBalance": current_balance,
            "subscriptionMonthlyTotal": subscription_total,
            "subscriptionMonthlyEquivalent": subscription_equivalent,
            "projections": balance_projection(current_balance, avg_income, avg_outgoing, subscription_total),
            "categoryTrends": category_trends(recent, previous),
            "savingsRate": savings_rate(avg_income, avg_outgoing),
        }
