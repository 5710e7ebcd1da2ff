"""Charts and result reports."""
