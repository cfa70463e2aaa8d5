"""``catalog-cache`` command line."""
