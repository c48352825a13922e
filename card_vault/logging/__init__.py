"""Console logging setup and per-source execution logs."""
