from circuitry_mcp import tools
from circuitry_mcp.tools import ALL_TOOLS, get_tool, input_schema, list_tool_specs


def test_catalogue_names_are_unique_and_complete():
    names = [t.name for t in ALL_TOOLS]
    assert len(names) == 18
    assert len(set(names)) == len(names)
    assert names[:2] == ["circuitry.status", "circuitry.connect"]


def test_grouped_by_namespace():
    grouped = tools.tools_by_namespace()
    assert sorted(grouped) == ["agent", "circuitry", "code", "nodes", "sheet", "workflow"]
    assert [t.name for t in grouped["agent"]] == ["agent.chat", "agent.createFlowchart", "agent.poll"]


def test_get_tool():
    assert get_tool("nodes.update").namespace == "nodes"
    assert get_tool("nodes.move") is None


def test_required_parameters():
    schema = input_schema(get_tool("nodes.update"))
    assert schema["type"] == "object"
    assert schema["required"] == ["nodeId", "data"]
    assert schema["properties"]["data"] == {
        "description": "Data to merge into node", "type": "object", "additionalProperties": True,
    }


def test_enum_parameters():
    props = input_schema(get_tool("agent.createFlowchart"))["properties"]
    assert props["style"]["type"] == "string"
    assert props["style"]["enum"] == ["simple", "detailed", "technical"]
    assert "enum" not in props["description"]


def test_array_items():
    props = input_schema(get_tool("sheet.setData"))["properties"]
    assert props["data"]["items"] == {"type": "array"}
    assert props["headers"]["items"] == {"type": "string"}


def test_parameterless_tool_schema():
    assert input_schema(get_tool("circuitry.status")) == {
        "type": "object", "properties": {}, "required": [],
    }


def test_list_tool_specs_shape():
    specs = list_tool_specs()
    assert len(specs) == len(ALL_TOOLS)
    assert set(specs[0]) == {"name", "description", "inputSchema"}
    code_create = next(s for s in specs if s["name"] == "code.create")
    assert code_create["inputSchema"]["required"] == []
