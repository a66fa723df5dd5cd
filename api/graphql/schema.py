"""
GraphQL schema for the query gateway.

    input LoginRequest { username: String!  password: String! }
    type LoginResponse { token: String! }
    type Query { login(input: LoginRequest!): LoginResponse! }
"""
import graphene

from core.logging_config import get_logger


logger = get_logger(__name__)


class LoginRequest(graphene.InputObjectType):
    username = graphene.String(required=True)
    password = graphene.String(required=True)


class LoginResponse(graphene.ObjectType):
    token = graphene.String(required=True)


class Query(graphene.ObjectType):
    login = graphene.Field(LoginResponse, input=LoginRequest(required=True), required=True)

    @staticmethod
    async def resolve_login(root, info, input):
        """Forward the credentials to the RPC backend; gateway errors surface as GraphQL errors."""
        client = info.context["login_client"]
        token = await client.login(input.username, input.password)
        logger.info("graphql_login_forwarded", username=input.username)
        return LoginResponse(token=token)


schema = graphene.Schema(query=Query)
