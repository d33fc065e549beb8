"""
API
FastAPI surface over the marketplace.
"""
