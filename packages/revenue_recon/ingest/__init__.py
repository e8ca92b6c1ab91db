"""Feed ingestion (CSV exports → engine rows)."""
