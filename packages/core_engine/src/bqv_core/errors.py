from typing import Optional


class BqvError(Exception):
    """Base class for errors scoped to a single view definition."""

    kind = "error"

    def __init__(self, message: str, dataset: Optional[str] = None, view: Optional[str] = None):
        self.dataset = dataset
        self.view = view
        super().__init__(message)

    @property
    def fqn(self) -> str:
        if self.dataset and self.view:
            return f"{self.dataset}.{self.view}"
        return self.dataset or ""


class ConfigError(BqvError):
    kind = "config"


class NotFoundError(BqvError):
    kind = "not_found"


class ConflictError(BqvError):
    kind = "conflict"


class ValidationError(BqvError):
    kind = "validation"


class TransportError(BqvError):
    kind = "transport"
