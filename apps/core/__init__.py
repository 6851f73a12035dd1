"""
Shared infrastructure: base model, error handling, logging, authentication
and DRF permission enforcement.
"""
