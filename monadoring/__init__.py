"""Monad validator uptime and RPC health monitoring with failover and alerting."""

__version__ = "0.1.0"
