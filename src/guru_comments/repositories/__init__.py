"""Data access helpers shared by services, endpoints and scripts."""
