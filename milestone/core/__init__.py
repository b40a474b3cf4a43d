"""Analytics core: buckets, aggregation, reconciliation, statistics, backlog."""
