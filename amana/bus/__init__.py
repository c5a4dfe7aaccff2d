"""Inbound/outbound message records."""

from amana.bus.events import InboundMessage, OutboundMessage

__all__ = ["InboundMessage", "OutboundMessage"]
