"""Transports exposing a keel runtime to AI agents.

Modules
-------
mcp     create_keel_mcp() + run_keel_mcp()
"""
