from .executor import GraphQLRequest, execute_query, format_error
from .schema import schema

__all__ = ["GraphQLRequest", "execute_query", "format_error", "schema"]
