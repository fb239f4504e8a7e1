"""
Runner Fleet - provision self-hosted CI runners across many repositories.

This package registers one isolated runner per repository under a single
owner, each in its own directory with its own local service, and keeps those
registrations reconciled across repeated runs.
"""

__version__ = "0.1.0"
