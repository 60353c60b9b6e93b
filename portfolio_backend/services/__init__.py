"""Service layer: mail transport, authentication, OAuth and newsletters."""
