"""
Core infrastructure: database, exceptions, error handling and security.
"""
