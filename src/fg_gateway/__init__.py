"""Authenticated JSON-RPC gateway exposing ESPN fantasy league tools."""

__version__ = "0.1.0"
