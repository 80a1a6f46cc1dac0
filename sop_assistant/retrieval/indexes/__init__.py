"""
Index Registry.

Provides registration and discovery of the engine's index types.

Example:
    from sop_assistant.retrieval.indexes import get_all_indexes, get_index

    # Get all registered index classes
    indexes = get_all_indexes()

    # Get a specific index class by name
    keyword_cls = get_index("keyword")
"""

from typing import Type

from sop_assistant.retrieval.base import BaseIndex

# Index registry - maps name to class, in registration order
_INDEX_REGISTRY: dict[str, Type[BaseIndex]] = {}


def register_index(cls: Type[BaseIndex]) -> Type[BaseIndex]:
    """
    Decorator to register an index type.

    Example:
        @register_index
        class KeywordIndex(BaseIndex):
            name = "keyword"
            ...
    """
    _INDEX_REGISTRY[cls.name] = cls
    return cls


def get_all_indexes() -> dict[str, Type[BaseIndex]]:
    """
    Get all registered index types.

    Returns:
        Dictionary mapping index name to class
    """
    return _INDEX_REGISTRY.copy()


def get_index(name: str) -> Type[BaseIndex] | None:
    """
    Get a specific index type by name.

    Args:
        name: Index name ("semantic", "keyword", "metadata", "image")

    Returns:
        Index class or None if not found
    """
    return _INDEX_REGISTRY.get(name)


# Import index modules to trigger registration
# These imports must be at the bottom to avoid circular imports
from sop_assistant.retrieval.indexes.semantic import SemanticIndex  # noqa: E402, F401
from sop_assistant.retrieval.indexes.keyword import KeywordIndex  # noqa: E402, F401
from sop_assistant.retrieval.indexes.metadata import MetadataIndex  # noqa: E402, F401
from sop_assistant.retrieval.indexes.image import ImageIndex  # noqa: E402, F401

__all__ = [
    "register_index",
    "get_all_indexes",
    "get_index",
    "SemanticIndex",
    "KeywordIndex",
    "MetadataIndex",
    "ImageIndex",
]
