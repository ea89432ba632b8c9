"""CLI command implementations for Convoy.

This module contains the command group implementations:
- config: Manage configuration
- reconnect: Inspect the reconnect policy
"""
