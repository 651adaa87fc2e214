"""
Agent-facing tool surface for the execution bridge.

Runs inside the API process (mounted at /mcp) so tool calls share the same
in-flight stores as the client routes. Can also run standalone over stdio:

    python -m docbridge.mcp_tools
"""

import re

from mcp.server.fastmcp import FastMCP

from docbridge.schemas.bridge import TARGET_PATTERN
from docbridge.services.bridge import get_bridge
from docbridge.services.outcome_text import render_outcome_text

mcp = FastMCP(
    name="docbridge",
    instructions=(
        "Execute Office.js scripts inside the user's open document. "
        "Keep each script small; a failed call returns a repair request to follow."
    ),
)

_TARGET_RE = re.compile(TARGET_PATTERN)


@mcp.tool()
async def execute_document_script(target: str, script: str, description: str = "") -> str:
    """
    Run a script in the document host attached to the bridge and wait for its result.

    Args:
        target: Document host the script is written for (word, excel, powerpoint)
        script: Body of the script; `context` is in scope, return any values you need
        description: One line on what the script does, used for hints and logs
    """
    if not _TARGET_RE.match(target):
        return f"Invalid target {target!r}: use a short host name such as word, excel or powerpoint."
    if not script.strip():
        return "Script is empty; nothing was executed."
    outcome = await get_bridge().execute(target, script, description or None)
    return render_outcome_text(outcome)


if __name__ == "__main__":
    mcp.run(transport="stdio")
