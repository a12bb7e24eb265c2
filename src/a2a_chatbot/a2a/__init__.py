"""
A2A (Agent-to-Agent) Protocol Implementation

Protocol data model for the A2A JSON-RPC 2.0 agent server.
"""

__version__ = "0.1.0"
__protocol_version__ = "0.3.0"
