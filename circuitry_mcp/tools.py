"""
Static catalogue of the tools exposed to MCP clients.

The catalogue only feeds tool listings and input schemas. Routing never
consults it: dispatch matches on the literal tool name, and unknown names are
relayed to the EServer unchanged.
"""
from typing import Any

from circuitry_mcp.models import ToolDefinition, ToolParameter

P = ToolParameter


CONNECTION_TOOLS = (
    ToolDefinition(
        name="circuitry.status",
        description="Check connection status to Circuitry.",
        returns_type="{ running, version, approved, websocket }",
        returns_description="Connection status",
    ),
    ToolDefinition(
        name="circuitry.connect",
        description=("Request connection to Circuitry. Shows permission dialog in Circuitry "
                     "for user approval. Call this first before using other tools."),
        returns_type="{ approved, message }",
        returns_description="Whether connection was approved",
    ),
)

WORKFLOW_TOOLS = (
    ToolDefinition(
        name="workflow.getActive",
        description="Get info about the currently visible workflow.",
        returns_type="{ id, name, nodeCount, edgeCount }",
        returns_description="Active workflow info",
    ),
    ToolDefinition(
        name="workflow.getStructure",
        description=("Get simplified structure of all flows in the workflow. "
                     "Use this to understand what user has drawn."),
        returns_type="{ flows: Array<{ id, name, nodeIds, summary }> }",
        returns_description="Simplified workflow structure",
    ),
    ToolDefinition(
        name="workflow.resolveFlow",
        description=('Resolve a user reference like "this flow" or "the diagram I drew" '
                     "to specific nodes."),
        parameters=(
            P("userMessage", "string", "The user message that references a flow", required=True),
        ),
        returns_type="FlowResolutionResult",
        returns_description="{ type, flowId, flowName, nodeIds, edgeIds, nodeNameMap, confidence, reasoning }",
    ),
    ToolDefinition(
        name="workflow.getNodeSummary",
        description=("Get simplified details about nodes. Returns name, type, and "
                     "connections, enough to understand the diagram."),
        parameters=(
            P("nodeIds", "array", "Array of node IDs to get details for (optional - defaults to all)"),
        ),
        returns_type="Array<{ id, name, type, inputs, outputs }>",
        returns_description="Simplified node details",
    ),
)

NODE_TOOLS = (
    ToolDefinition(
        name="nodes.list",
        description="List all nodes in the active workflow.",
        returns_type="NodeInfo[]",
        returns_description="Array of all nodes with id, type, name, position, data",
    ),
    ToolDefinition(
        name="nodes.get",
        description="Get a specific node by its ID.",
        parameters=(P("nodeId", "string", "The unique ID of the node", required=True),),
        returns_type="NodeInfo | null",
        returns_description="Node info or null if not found",
    ),
    ToolDefinition(
        name="nodes.update",
        description="Update a node's data/configuration.",
        parameters=(
            P("nodeId", "string", "ID of the node to update", required=True),
            P("data", "object", "Data to merge into node", required=True),
        ),
        returns_type="boolean",
        returns_description="True if update succeeded",
    ),
    ToolDefinition(
        name="nodes.delete",
        description="Delete a node from the workflow.",
        parameters=(P("nodeId", "string", "ID of the node to delete", required=True),),
        returns_type="boolean",
        returns_description="True if deletion succeeded",
    ),
)

CODE_TOOLS = (
    ToolDefinition(
        name="code.create",
        description=("Create a code node. Use filePath for bidirectional file sync, "
                     "OR use name+content for direct creation."),
        parameters=(
            P("filePath", "string", "Absolute path to source file (enables bidirectional sync)"),
            P("name", "string", "Display name for the node"),
            P("content", "string", "Code content (used when not using filePath)"),
            P("position", "object", "Position {x, y} on canvas"),
        ),
        returns_type="string",
        returns_description="ID of created code node",
    ),
    ToolDefinition(
        name="code.createBatch",
        description="Create multiple code nodes from file paths. EServer fetches files and sets up sync.",
        parameters=(
            P("filePaths", "array", "Array of absolute file paths", required=True),
            P("layout", "string", "How to arrange nodes", enum=("grid", "vertical", "horizontal")),
        ),
        returns_type="{ nodeIds: string[], errors: string[] }",
        returns_description="Created node IDs and any errors",
    ),
    ToolDefinition(
        name="code.setCode",
        description="Update code content in a code node. If node is EServer-sourced, will sync to source file.",
        parameters=(
            P("nodeId", "string", "Code node ID", required=True),
            P("code", "string", "Source code to set", required=True),
        ),
        returns_type="boolean",
        returns_description="True if successful",
    ),
)

SHEET_TOOLS = (
    ToolDefinition(
        name="sheet.create",
        description="Create a new Sheet (spreadsheet) node with data.",
        parameters=(
            P("name", "string", "Display name for the sheet"),
            P("data", "array", "2D array of data", items={"type": "array"}),
            P("headers", "array", "Column headers"),
            P("position", "object", "Position {x, y} on canvas"),
        ),
        returns_type="string",
        returns_description="ID of the created sheet node",
    ),
    ToolDefinition(
        name="sheet.setData",
        description="Replace all data in a Sheet.",
        parameters=(
            P("nodeId", "string", "Sheet node ID", required=True),
            P("data", "array", "2D array of data to set", required=True, items={"type": "array"}),
            P("headers", "array", "Optional column headers"),
        ),
        returns_type="boolean",
        returns_description="True if successful",
    ),
)

AGENT_TOOLS = (
    ToolDefinition(
        name="agent.chat",
        description=("Send a message to Circuitry's chat agent. Opens chat panel in agent+mcp mode. "
                     "Agent creates flowcharts, handles complex visual tasks. "
                     "Returns a chatId for polling."),
        parameters=(
            P("message", "string", "Message to send to the agent", required=True),
            P("context", "object", "Optional context (selected nodes, etc)"),
        ),
        returns_type="{ chatId, status }",
        returns_description="Chat ID for polling and initial status",
    ),
    ToolDefinition(
        name="agent.createFlowchart",
        description="Ask agent to create a flowchart. Returns chatId for polling.",
        parameters=(
            P("description", "string", "Description of the flowchart to create", required=True),
            P("style", "string", "Style preference", enum=("simple", "detailed", "technical")),
        ),
        returns_type="{ chatId, status }",
        returns_description="Chat ID for polling",
    ),
    ToolDefinition(
        name="agent.poll",
        description="Poll for agent response. Call this after agent.chat or agent.createFlowchart.",
        parameters=(P("chatId", "string", "Chat ID from agent.chat", required=True),),
        returns_type="{ status, response?, createdNodes?, error? }",
        returns_description="Status: pending, completed, error. Response included when completed.",
    ),
)

ALL_TOOLS: tuple[ToolDefinition, ...] = (
    CONNECTION_TOOLS + WORKFLOW_TOOLS + NODE_TOOLS + CODE_TOOLS + SHEET_TOOLS + AGENT_TOOLS
)


def _param_to_schema(param: ToolParameter) -> dict[str, Any]:
    """Map a tool parameter to a JSON-schema property."""
    schema: dict[str, Any] = {"description": param.description}
    if param.type == "string":
        schema["type"] = "string"
        if param.enum:
            schema["enum"] = list(param.enum)
    elif param.type in ("number", "boolean"):
        schema["type"] = param.type
    elif param.type == "array":
        schema["type"] = "array"
        schema["items"] = param.items or {"type": "string"}
    elif param.type == "object":
        schema["type"] = "object"
        schema["additionalProperties"] = True
    else:
        schema["type"] = "string"
    return schema


def input_schema(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {p.name: _param_to_schema(p) for p in tool.parameters},
        "required": [p.name for p in tool.parameters if p.required],
    }


def get_tool(name: str) -> ToolDefinition | None:
    return next((t for t in ALL_TOOLS if t.name == name), None)


def tools_by_namespace() -> dict[str, list[ToolDefinition]]:
    grouped: dict[str, list[ToolDefinition]] = {}
    for tool in ALL_TOOLS:
        grouped.setdefault(tool.namespace, []).append(tool)
    return grouped


def list_tool_specs() -> list[dict[str, Any]]:
    """Name, description and input schema of every tool, in catalogue order."""
    return [
        {"name": t.name, "description": t.description, "inputSchema": input_schema(t)}
        for t in ALL_TOOLS
    ]
