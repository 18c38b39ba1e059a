from __future__ import annotations


class ServiceError(ValueError):
    """Règle métier violée (HTTP 400)."""


class NotFoundError(ServiceError):
    """Entité absente ou supprimée (HTTP 404)."""


class ConflictError(ServiceError):
    """Doublon sur une clé unique (HTTP 409)."""


class InvalidTransitionError(ServiceError):
    def __init__(self, entity: str, current: str, action: str):
        self.entity = entity
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} {entity} in status {current}")
