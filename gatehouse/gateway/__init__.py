"""The edge gateway: authenticates, authorizes and forwards requests."""
