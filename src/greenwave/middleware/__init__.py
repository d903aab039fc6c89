"""HTTP middleware — request ids and security headers."""
