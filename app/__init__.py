"""
FastAPI Application Package

This package contains the FastAPI application and routing logic: price lookup,
tournament order endpoints, and the WebSocket entry point of the shared price stream.
"""
