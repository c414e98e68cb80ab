"""Schema declaration and compilation."""

from elide_client.schema.compiler import (
    Cardinality,
    CompiledSchema,
    Direction,
    Link,
    ModelDefinition,
    PathSegment,
    compile_schema,
)
from elide_client.schema.declarations import (
    LinkDeclaration,
    ModelDeclaration,
    SchemaDeclaration,
    StoreDeclaration,
    load_declaration,
    load_schema_file,
)

__all__ = [
    "Cardinality",
    "CompiledSchema",
    "Direction",
    "Link",
    "LinkDeclaration",
    "ModelDeclaration",
    "ModelDefinition",
    "PathSegment",
    "SchemaDeclaration",
    "StoreDeclaration",
    "compile_schema",
    "load_declaration",
    "load_schema_file",
]
