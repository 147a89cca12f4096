"""Product catalog and stock management."""
