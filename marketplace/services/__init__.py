"""Business services for catalog, orders and notifications."""
