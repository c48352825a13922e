"""Row -> CardProfile mapping, overrides and photo lookup."""
