"""Per-record security context: record capabilities plus field visibility."""
