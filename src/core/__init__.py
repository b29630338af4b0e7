"""Core domain package for reportwatch.

Core contains channel identity, matching, queueing, session supervision and
monitoring logic without any Telegram or storage-specific code, keeping the
business logic portable.
"""
