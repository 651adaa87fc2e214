import asyncio

from conftest import wait_for_pending


def test_tool_is_registered():
    from docbridge.mcp_tools import mcp

    tools = asyncio.run(mcp.list_tools())
    assert "execute_document_script" in [tool.name for tool in tools]


def test_tool_rejects_bad_input_without_dispatching(make_bridge, monkeypatch):
    from docbridge import mcp_tools

    bridge = make_bridge()
    monkeypatch.setattr(mcp_tools, "get_bridge", lambda: bridge)

    assert asyncio.run(mcp_tools.execute_document_script("../etc", "return 1;")).startswith("Invalid target")
    assert asyncio.run(mcp_tools.execute_document_script("word", "   ")).startswith("Script is empty")
    assert len(bridge.state.store) == 0


def test_tool_returns_rendered_outcome(make_bridge, monkeypatch):
    from docbridge import mcp_tools

    bridge = make_bridge()
    monkeypatch.setattr(mcp_tools, "get_bridge", lambda: bridge)
    script = 'body.insertParagraph("x", "End");\nawait context.sync();\nreturn { success: true };'

    async def _run():
        call = asyncio.create_task(mcp_tools.execute_document_script("word", script, "insert x"))
        (task,) = await wait_for_pending(bridge)
        bridge.submit_result(task.correlation_id, False, error={"code": "InvalidArgument", "message": "bad location"})
        return await call

    text = asyncio.run(_run())
    assert "attempt 1/3" in text
    assert "bad location" in text
