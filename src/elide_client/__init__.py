"""elide-client - local object graph over JSON:API resource servers.

A schema declares models, their links and the store each model lives in.
Reads are answered from an in-memory relational store and fall through to
the remote store on a miss; writes stay local until ``commit`` rolls them
into one atomic JSON Patch request against the server.
"""

__version__ = "0.3.0"

__all__ = ["Elide", "Query", "ClientConfig", "compile_schema"]


# Lazy imports keep `import elide_client` free of httpx/pydantic startup cost
def __getattr__(name: str):
    if name == "Elide":
        from elide_client.client import Elide
        return Elide
    if name == "Query":
        from elide_client.query import Query
        return Query
    if name == "ClientConfig":
        from elide_client.config import ClientConfig
        return ClientConfig
    if name == "compile_schema":
        from elide_client.schema import compile_schema
        return compile_schema
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
