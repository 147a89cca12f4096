"""Push notification delivery and device token storage."""
