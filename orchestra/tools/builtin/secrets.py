"""
Secret lookup tool.

``get_secret`` tells the model whether a secret is available and returns
the token to embed in HTTP tool inputs. The value itself is never returned.
"""

from pydantic import BaseModel, Field

from orchestra.tools.base import Tool, ToolInvocation
from orchestra.tools.models import ToolResult
from orchestra.tools.secrets import SecretStore, secret_token


class GetSecretParams(BaseModel):
    """Parameters for the get_secret tool."""

    key: str = Field(..., min_length=1, description="Secret name, e.g. SERPER_API_KEY")


class GetSecretTool(Tool):
    """Tool returning the placeholder token for an allowlisted secret."""

    name: str = "get_secret"
    description: str = (
        "Check that an API key is configured and get the token to use for it "
        "in http_get/http_post inputs"
    )
    schema: type[GetSecretParams] = GetSecretParams

    def __init__(self, secrets: SecretStore) -> None:
        self.secrets: SecretStore = secrets

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = GetSecretParams(**invocation.params)

        if not self.secrets.is_allowed(params.key):
            return ToolResult.error_result(
                invocation.call_id,
                f"Unknown or unauthorized secret key: {params.key}. "
                f"Available keys: {', '.join(self.secrets.allowed)}",
            )

        if self.secrets.get(params.key) is None:
            return ToolResult.error_result(
                invocation.call_id,
                f"Secret {params.key} is not configured. Add it to the [secrets] table of your config.toml.",
            )

        return ToolResult.success_result(
            invocation.call_id,
            f"Use {secret_token(params.key)} in place of the value; "
            "it is substituted when the request is sent.",
        )
