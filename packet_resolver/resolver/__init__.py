from packet_resolver.resolver.store import FieldDefinition, StructureStore
from packet_resolver.resolver.engine import ResolveEngine, ResolveState, prepare, resolve

__all__ = [
    "FieldDefinition", "StructureStore",
    "ResolveEngine", "ResolveState", "prepare", "resolve",
]
