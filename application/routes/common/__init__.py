"""
Common utilities for route handlers.

Provides shared functionality to reduce code duplication:
- Error handlers
- Rate limiting utilities
- Response formatting
- Request validation
"""
