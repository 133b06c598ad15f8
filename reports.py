"""Sales analytics over historical orders."""
import csv
import io
import datetime
from collections import Counter, defaultdict

import orders
import store
from errors import InvalidInput

PERIODS = {"today", "week", "month", "all"}


def filter_period(order_list, period: str, now=None):
    if period not in PERIODS:
        raise InvalidInput("period must be one of today, week, month, all")
    now = now or store.now_dt()
    if period == "all":
        return list(order_list)

    out = []
    for o in order_list:
        created = store.parse_ts(o["createdAt"])
        if period == "today":
            keep = created.date() == now.date()
        elif period == "week":
            keep = created >= now - datetime.timedelta(days=7)
        else:
            keep = created >= now - datetime.timedelta(days=30)
        if keep:
            out.append(o)
    return out

def top_with_ties(counter: Counter, key="name"):
    """Every entry tied at the highest count; empty when nothing was counted."""
    if not counter:
        return []
    best = max(counter.values())
    return [{key: k, "count": n} for k, n in sorted(counter.items()) if n == best]

def _hour_range(created_at: str) -> str:
    hour = store.parse_ts(created_at).hour
    return f"{hour:02d}:00-{hour + 1:02d}:00"

def _combo(order) -> str:
    names = sorted(t["name"] for t in order["toppings"])
    toppings = ", ".join(names) if names else "No toppings"
    return f"{order['shavedIce']['flavor']} + {toppings}"

def build_report(order_list, period="today", now=None) -> dict:
    filtered = filter_period(order_list, period, now)

    daily = defaultdict(list)
    for o in filtered:
        daily[o["createdAt"][:10]].append(o)
    daily_rows = []
    for date in sorted(daily, reverse=True):
        revenue = sum(o["pricing"]["total"] for o in daily[date])
        daily_rows.append({
            "date": date,
            "orders": len(daily[date]),
            "revenue": revenue,
            "avgOrderValue": round(revenue / len(daily[date]), 2),
        })

    total_orders = len(filtered)
    total_revenue = sum(o["pricing"]["total"] for o in filtered)
    flavors = Counter(o["shavedIce"]["flavor"] or "Unknown" for o in filtered)
    toppings = Counter(t["name"] for o in filtered for t in o["toppings"])
    hours = Counter(_hour_range(o["createdAt"]) for o in filtered)
    combos = Counter(_combo(o) for o in filtered)
    completed = len([o for o in filtered if o["status"] == orders.COMPLETED])

    return {
        "period": period,
        "totalOrders": total_orders,
        "totalRevenue": total_revenue,
        "avgOrderValue": round(total_revenue / total_orders, 2) if total_orders else 0,
        "daily": daily_rows,
        "topFlavors": top_with_ties(flavors),
        "topToppings": top_with_ties(toppings),
        "peakTimes": top_with_ties(hours, key="timeRange"),
        "topCombinations": [{"combo": k, "count": n} for k, n in sorted(combos.items(), key=lambda kv: (-kv[1], kv[0]))[:5]],
        "completionRate": round(completed / total_orders * 100, 1) if total_orders else 0,
    }

def sales_report(period="today") -> dict:
    return build_report(orders.all_orders(), period)

def sales_csv(report: dict) -> str:
    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow(["Date", "Orders", "Revenue", "Avg Order Value"])
    for row in report["daily"]:
        w.writerow([row["date"], row["orders"], row["revenue"], f"{row['avgOrderValue']:.2f}"])

    w.writerow([])
    w.writerow(["Summary"])
    w.writerow(["Period", report["period"]])
    w.writerow(["Total Orders", report["totalOrders"]])
    w.writerow(["Total Revenue", report["totalRevenue"]])
    w.writerow(["Avg Order Value", f"{report['avgOrderValue']:.2f}"])
    w.writerow(["Completion Rate", f"{report['completionRate']:.1f}%"])
    for item in report["topFlavors"]:
        w.writerow(["Top Flavor", item["name"], item["count"]])
    for item in report["topToppings"]:
        w.writerow(["Top Topping", item["name"], item["count"]])
    for item in report["peakTimes"]:
        w.writerow(["Peak Time", item["timeRange"], item["count"]])
    return buf.getvalue()
