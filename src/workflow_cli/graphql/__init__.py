from workflow_cli.graphql.client import GraphQLClient

__all__ = ["GraphQLClient"]
