"""Service integrations for the issuer."""
