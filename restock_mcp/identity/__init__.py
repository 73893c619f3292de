"""Vehicle identity resolution and variant-family backfill."""
