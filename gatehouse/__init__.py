"""Edge gateway authentication and authorization for backend services."""
