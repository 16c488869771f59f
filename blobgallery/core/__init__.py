"""
Core infrastructure: configuration and logging.
"""
