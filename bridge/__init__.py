"""Plugin bridge: reconnecting command channel runtime."""
