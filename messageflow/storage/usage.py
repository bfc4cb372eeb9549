"""Aggregation over usage log rows.

Cost is recomputed from each row's token counts and the per-1k prices it
was logged with. Stored cost columns are only read for rows that predate
the price columns.
"""

from messageflow.providers.models import UsageRecord, UsageStats


def row_cost(row: dict) -> float:
    if "cost_per_1k_input" not in row:
        return float(row.get("total_cost", 0.0))
    record = UsageRecord(
        input_tokens=int(row.get("input_tokens", 0)),
        output_tokens=int(row.get("output_tokens", 0)),
    )
    return record.total_cost(row["cost_per_1k_input"], row.get("cost_per_1k_output", 0.0))


def summarize_usage(rows: list[dict]) -> UsageStats:
    stats = UsageStats()
    latency = 0.0
    for row in rows:
        stats.total_requests += 1
        if row.get("success"):
            stats.successful_requests += 1
        else:
            stats.failed_requests += 1
        stats.total_tokens += int(row.get("total_tokens", 0))
        stats.total_cost += row_cost(row)
        latency += float(row.get("response_time_ms", 0.0))
    if stats.total_requests:
        stats.average_latency_ms = round(latency / stats.total_requests, 2)
    return stats


def usage_breakdown(rows: list[dict], column: str) -> list[dict]:
    """Per-value totals for one row column, in order of first appearance."""
    groups: dict = {}
    for row in rows:
        groups.setdefault(row.get(column), []).append(row)
    return [{column: value, **summarize_usage(group).to_dict()} for value, group in groups.items()]
