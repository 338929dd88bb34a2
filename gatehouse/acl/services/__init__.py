"""Service integrations for the ACL."""
