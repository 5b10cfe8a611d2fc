from .registry import SchemaCreator, SchemaCreatorRegistry
from .router import TenantRouter, is_reserved_schema, validate_tenant_name
from .tables import build_default_registry

__all__ = [
    "SchemaCreator",
    "SchemaCreatorRegistry",
    "TenantRouter",
    "build_default_registry",
    "is_reserved_schema",
    "validate_tenant_name",
]
