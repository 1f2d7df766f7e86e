"""Tools exposed over the bridge."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from julesbridge.api.errors import JulesError
from julesbridge.bridge.protocol import JsonRpcError, JsonRpcErrorCode
from julesbridge.context.gatherer import build_prompt
from julesbridge.logging import get_logger

if TYPE_CHECKING:
    from julesbridge.api.client import JulesClient
    from julesbridge.context.gatherer import ContextProvider

log = get_logger("bridge.tools")

DELEGATE_TO_JULES = "delegate_to_jules"

DELEGATE_TO_JULES_TOOL: dict[str, Any] = {
    "name": DELEGATE_TO_JULES,
    "description": (
        "Delegate a coding task to the remote Jules orchestration service. "
        "Jules will execute the task and return any code changes as a remote branch."
    ),
    "inputSchema": {
        "type": "object",
        "properties": {
            "task": {
                "type": "string",
                "description": "The task description to delegate to Jules for execution",
            },
            "context_files": {
                "type": "array",
                "description": "List of file paths that provide context for the task",
                "items": {"type": "string"},
            },
        },
        "required": ["task"],
    },
}

TOOLS = [DELEGATE_TO_JULES_TOOL]


def text_result(text: str, *, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def _delegate_arguments(arguments: dict[str, Any]) -> tuple[str, list[str]]:
    task = arguments.get("task")
    if not isinstance(task, str) or not task.strip():
        raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, "Missing required parameter: task")
    files = arguments.get("context_files") or []
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        raise JsonRpcError(
            JsonRpcErrorCode.INVALID_PARAMS, "Parameter context_files must be a list of strings"
        )
    return task, files


async def delegate_to_jules(
    client: JulesClient,
    gatherer: ContextProvider,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Gather workspace context, build the prompt and start a session.

    Bad arguments raise JsonRpcError(INVALID_PARAMS). Failures after that
    come back as a tool result with ``isError`` set.
    """
    task, files = _delegate_arguments(arguments)
    log.info("Delegating task: %s", task[:100])

    try:
        context = await gatherer.gather(files)
        prompt = build_prompt(context, task)
        session = await client.create_session(
            context.owner, context.repo, context.branch, prompt, task=task
        )
    except JulesError as e:
        log.warning("Delegation failed: %s", e.message)
        if e.diagnostic:
            log.debug("Delegation diagnostic: %s", e.diagnostic)
        return text_result(f"Error: {e.message}", is_error=True)
    except Exception:
        log.exception("Unexpected delegation failure")
        return text_result("Error: Failed to delegate task to Jules.", is_error=True)

    payload = {
        "sessionId": session.id,
        "status": session.status.value,
        "message": f"Task delegated successfully. Session ID: {session.id}",
    }
    log.info("Session created: %s", session.id)
    return text_result(json.dumps(payload, indent=2))
