"""Clients for the market data sources and the mesh radio."""
