"""Service layer: comment tree store, rate limiting, identity and sessions."""
