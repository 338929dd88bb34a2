"""The ACL service: resolves permissions over the group -> role graph."""
