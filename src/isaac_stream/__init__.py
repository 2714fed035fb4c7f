"""
isaac-stream: client for ISAAC in-situ visualization servers.

Requests a rendered stream over WebSocket, decodes the image frames it
receives and feeds the local camera state back to the remote renderer.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
