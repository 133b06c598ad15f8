import csv
import io

import pytest

import reports
import store
from errors import InvalidInput

NOW = store.parse_ts("2026-03-10 15:30:00")


def _order(created_at, flavor, toppings=(), total=70, status="Completed"):
    return {
        "createdAt": created_at,
        "shavedIce": {"flavor": flavor},
        "toppings": [{"name": t, "price": 10} for t in toppings],
        "pricing": {"total": total},
        "status": status,
    }


ORDERS = [
    _order("2026-03-10 14:05:00", "Matcha", ["Cherry", "Apple"], 90),
    _order("2026-03-10 14:45:00", "Thai Tea", ["Apple"], 80, status="Pending"),
    _order("2026-03-10 09:10:00", "Matcha", ["Apple", "Cherry"], 90),
    _order("2026-03-10 09:50:00", "Thai Tea", [], 60, status="Cancelled"),
    _order("2026-03-08 11:00:00", "Strawberry", ["Blueberry"], 70),
    _order("2026-01-01 10:00:00", "Strawberry", [], 60),
]


def test_filter_period():
    assert len(reports.filter_period(ORDERS, "today", NOW)) == 4
    assert len(reports.filter_period(ORDERS, "week", NOW)) == 5
    assert len(reports.filter_period(ORDERS, "month", NOW)) == 5
    assert len(reports.filter_period(ORDERS, "all", NOW)) == 6
    with pytest.raises(InvalidInput):
        reports.filter_period(ORDERS, "year", NOW)


def test_today_report():
    r = reports.build_report(ORDERS, "today", NOW)
    assert r["totalOrders"] == 4
    assert r["totalRevenue"] == 320
    assert r["avgOrderValue"] == 80
    assert r["daily"] == [{"date": "2026-03-10", "orders": 4, "revenue": 320, "avgOrderValue": 80}]
    assert r["topFlavors"] == [{"name": "Matcha", "count": 2}, {"name": "Thai Tea", "count": 2}]
    assert r["topToppings"] == [{"name": "Apple", "count": 3}]
    assert r["peakTimes"] == [{"timeRange": "09:00-10:00", "count": 2}, {"timeRange": "14:00-15:00", "count": 2}]
    assert r["topCombinations"][0] == {"combo": "Matcha + Apple, Cherry", "count": 2}
    assert {"combo": "Thai Tea + No toppings", "count": 1} in r["topCombinations"]
    assert r["completionRate"] == 50.0


def test_week_report_daily_rows_newest_first():
    r = reports.build_report(ORDERS, "week", NOW)
    assert [d["date"] for d in r["daily"]] == ["2026-03-10", "2026-03-08"]
    assert r["daily"][1] == {"date": "2026-03-08", "orders": 1, "revenue": 70, "avgOrderValue": 70}


def test_empty_report():
    r = reports.build_report([], "all", NOW)
    assert r["totalOrders"] == 0
    assert r["avgOrderValue"] == 0
    assert r["topFlavors"] == [] and r["peakTimes"] == [] and r["topCombinations"] == []
    assert r["completionRate"] == 0


def test_top_combinations_capped_at_five():
    many = [_order("2026-03-10 10:00:00", f"Flavor{i}") for i in range(8)]
    assert len(reports.build_report(many, "all", NOW)["topCombinations"]) == 5


def test_sales_csv():
    text = reports.sales_csv(reports.build_report(ORDERS, "week", NOW))
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == ["Date", "Orders", "Revenue", "Avg Order Value"]
    assert rows[1] == ["2026-03-10", "4", "320", "80.00"]
    assert ["Period", "week"] in rows
    assert ["Total Revenue", "390"] in rows
    assert ["Top Topping", "Apple", "3"] in rows
