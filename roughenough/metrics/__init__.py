"""Per-worker counters, their aggregation and reporting, and JSON snapshot files."""