"""
GraphQL request execution and error formatting.
"""
from typing import Any, Dict, Optional

import graphene
from graphql import GraphQLError
from pydantic import BaseModel, ConfigDict, Field

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


logger = get_logger(__name__)


class GraphQLRequest(BaseModel):
    """Standard GraphQL-over-HTTP request body."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    variables: Optional[Dict[str, Any]] = None
    operation_name: Optional[str] = Field(default=None, alias="operationName")


def format_error(error: GraphQLError) -> Dict[str, Any]:
    """Serialize an execution error; business errors keep their message and get typed extensions."""
    formatted = dict(error.formatted)
    original = error.original_error
    if original is None:
        return formatted

    extensions = dict(formatted.get("extensions") or {})
    if isinstance(original, BusinessException):
        extensions.update(code=int(original.code), type=original.error_type)
        if original.details:
            extensions["details"] = original.details
    else:
        # Unknown resolver failure: log it, hide the internals
        logger.error(
            "graphql_resolver_failed",
            path=formatted.get("path"),
            error=str(original),
            error_type=type(original).__name__,
            exc_info=original,
        )
        formatted["message"] = "Internal server error"
        extensions.update(code=int(BusinessCode.SYSTEM_ERROR), type="SystemError")
    formatted["extensions"] = extensions
    return formatted


async def execute_query(
    schema: graphene.Schema,
    payload: GraphQLRequest,
    context: Dict[str, Any],
) -> Dict[str, Any]:
    result = await schema.execute_async(
        payload.query,
        variable_values=payload.variables,
        operation_name=payload.operation_name,
        context_value=context,
    )
    body: Dict[str, Any] = {"data": result.data}
    if result.errors:
        body["errors"] = [format_error(err) for err in result.errors]
    return body
