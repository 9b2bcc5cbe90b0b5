"""Reactor logging client harness

Drives a request/response logging service over TCP and UDP at the same time:
- each client session owns one socket and runs a fixed, paced request/reply loop
- sessions share a bounded worker pool
- shutdown is two-phase and always time-bounded

Failures stay local to the session that hit them and surface only as logs.
"""

__all__ = ["AppClient", "ClientConfig"]

from .app import AppClient, ClientConfig
