"""Prometheus metrics for the Procurement Bot."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("procurement_bot", "Procurement Bot application info")
app_info.info({"version": "0.1.0", "name": "procurement-bot"})

# Extraction metrics
extraction_tier_total = Counter(
    "extraction_tier_total",
    "Extraction tier outcomes per source",
    ["source", "tier", "outcome"],
)

offers_extracted_total = Counter(
    "offers_extracted_total",
    "Total number of offer records written",
    ["source"],
)

sentinel_records_total = Counter(
    "sentinel_records_total",
    "Total number of sentinel records written",
    ["source", "kind"],
)

term_duration_seconds = Histogram(
    "term_duration_seconds",
    "Time spent searching and extracting one query term",
    ["source"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# Job metrics
job_transitions_total = Counter(
    "job_transitions_total",
    "Job status transitions",
    ["status"],
)

job_store_errors_total = Counter(
    "job_store_errors_total",
    "Job store backend errors swallowed after startup",
    ["operation"],
)

# Reconciliation metrics
reconciliation_outcomes_total = Counter(
    "reconciliation_outcomes_total",
    "Reconciliation outcomes",
    ["outcome"],
)
