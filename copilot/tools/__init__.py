"""External collaborator clients."""

from copilot.tools.ai_client import AIClient, parse_json_response

__all__ = ["AIClient", "parse_json_response"]
