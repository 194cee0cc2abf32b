"""Business logic for stores, scripts, verification and subscriptions."""
