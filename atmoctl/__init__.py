"""Inspect OVN logical routers over OVSDB and trigger gateway chassis failover."""

__version__ = "0.1.0"