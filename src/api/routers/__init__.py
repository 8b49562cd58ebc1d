"""
API Routers.

Exports:
- records: The public record read endpoint
- system: System health endpoint
"""

from src.api.routers import records, system

records_router = records.router
system_router = system.router

__all__ = [
    "records",
    "system",
    "records_router",
    "system_router",
]
