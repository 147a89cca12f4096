"""
Core package for shared utilities.

Holds configuration, structured logging and token verification used by the
API layer and the services.
"""
