"""Audit logging of dispatched actions."""
