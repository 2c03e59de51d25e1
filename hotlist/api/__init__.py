"""
Hotlist API
===========

FastAPI application exposing the service triggers and queries.

    uvicorn hotlist.api.main:app --port 8000
"""
