"""Amana - pt-BR personal assistant for Telegram, backed by Google Workspace."""

__version__ = "0.1.0"
__logo__ = "🌿"
