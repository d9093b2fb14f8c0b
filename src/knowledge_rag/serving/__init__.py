"""
Serving — FastAPI application exposing sync control and context assembly.

This module maps the sync service and the context assembler onto HTTP so
chat / answer-generation collaborators can call them from another process.
"""
