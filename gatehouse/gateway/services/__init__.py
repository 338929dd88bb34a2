"""Integrations with the issuer, the ACL and backend services."""
