"""Repository layer for data persistence.

Provides repository classes for persisting domain data to the database.
Repositories encapsulate data access logic and provide a clean interface
for the service layer.
"""

from name_resolution.repositories.mapping_repo import MappingRepository
from name_resolution.repositories.transcript_repo import TranscriptRepository

__all__ = [
    "MappingRepository",
    "TranscriptRepository",
]
