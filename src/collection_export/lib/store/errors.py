"""Errors raised by the record store query layer."""


class QueryError(Exception):
    """Base class for filter, sort and field resolution failures."""


class FilterSyntaxError(QueryError):
    """Raised when a filter or sort expression cannot be parsed.

    Args:
        expression: The offending expression.
        message: Human-readable error description.
        position: Character offset where parsing failed.
    """

    def __init__(self, expression: str, message: str, position: int | None = None) -> None:
        self.expression = expression
        self.message = message
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{message}{where}: {expression!r}")


class UnknownFieldError(QueryError):
    """Raised when a field path does not name a field of the collection."""

    def __init__(self, path: str, collection_name: str) -> None:
        self.path = path
        self.collection_name = collection_name
        super().__init__(f"unknown field {path!r} in collection {collection_name!r}")


class MultiMatchFieldError(QueryError):
    """Raised when a field path would require a one-to-many sub-query."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"field {path!r} crosses a multi-value relation")


class RecordNotFoundError(LookupError):
    """Raised when a collection, record or admin cannot be found."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier!r} not found")
