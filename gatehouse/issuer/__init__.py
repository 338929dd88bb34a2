"""Token issuance and validation service."""
