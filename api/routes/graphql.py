"""
GraphQL 路由：/query 执行查询，/ 提供 Playground
"""
import json
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from api.graphql import GraphQLRequest, execute_query, schema
from api.graphql.playground import playground_html
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


router = APIRouter(tags=["GraphQL"])

QUERY_PATH = "/query"


def _context(request: Request) -> dict:
    return {
        "request": request,
        "login_client": request.app.state.login_client,
    }


@router.post(QUERY_PATH)
async def graphql_post(payload: GraphQLRequest, request: Request) -> JSONResponse:
    """执行 GraphQL 查询（标准 JSON 请求体）"""
    body = await execute_query(schema, payload, _context(request))
    return JSONResponse(body)


@router.get(QUERY_PATH)
async def graphql_get(
    request: Request,
    query: str,
    variables: Optional[str] = None,
    operationName: Optional[str] = None,
) -> JSONResponse:
    """执行 GraphQL 查询（GET 查询参数）"""
    parsed = None
    if variables:
        try:
            parsed = json.loads(variables)
        except ValueError:
            parsed = None
        if not isinstance(parsed, dict):
            raise BusinessException(
                code=BusinessCode.PARAM_TYPE_ERROR,
                message="variables must be a JSON object",
                error_type="ValidationError",
                field="variables",
            )
    payload = GraphQLRequest(query=query, variables=parsed, operationName=operationName)
    body = await execute_query(schema, payload, _context(request))
    return JSONResponse(body)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def playground() -> HTMLResponse:
    return HTMLResponse(playground_html(endpoint=QUERY_PATH))


# Registered last: any other GET path falls back to the playground
@router.get("/{path:path}", response_class=HTMLResponse, include_in_schema=False)
async def playground_fallback(path: str) -> HTMLResponse:
    return HTMLResponse(playground_html(endpoint=QUERY_PATH))
