"""Source ingestion (Excel / CSV)."""
