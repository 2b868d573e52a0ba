"""Shared building blocks for ledger modules: exceptions, base service, base repository."""

from goosetap.modules.shared.base_repository import BaseRepository
from goosetap.modules.shared.base_service import BaseService

__all__ = ["BaseRepository", "BaseService"]
