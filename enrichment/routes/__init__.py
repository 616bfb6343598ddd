"""Entity service API routes."""
