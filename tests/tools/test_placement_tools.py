"""
Tests for the placement MCP tools

Tests cover:
1. Tool registration and schemas
2. placement_list_blocks on a saved drawing
3. placement_insert_blocks with inline requests and a batch file
4. Error envelopes for missing drawings, bad batches and unknown tools
"""

import asyncio

import ezdxf
import pytest

from blockplace.adapters.ezdxf_session import define_parameters, read_parameters
from blockplace.config import settings
from blockplace.tools.placement_tools import PlacementTools


@pytest.fixture
def tools():
    return PlacementTools()


@pytest.fixture
def drawing_path(tmp_path):
    """Saved drawing with one parametric DOOR block."""
    doc = ezdxf.new()
    block = doc.blocks.new(name="DOOR")
    block.add_line((0, 0), (1, 0))
    block.add_attdef("TAG", (0, 0.2), text="?")
    define_parameters(doc, "DOOR", {"Width": 800.0})
    path = tmp_path / "plan.dxf"
    doc.saveas(path)
    return path


def run(tools, name, args):
    return asyncio.run(tools.handle_tool(name, args))


class TestToolRegistration:
    """Test tool listing."""

    def test_tool_names(self, tools):
        names = [t.name for t in tools.get_tools()]
        assert names == ["placement_list_blocks", "placement_insert_blocks"]

    def test_insert_schema_requires_drawing(self, tools):
        insert = tools.get_tools()[1]
        assert insert.inputSchema["required"] == ["dxf_path"]
        assert "requests_file" in insert.inputSchema["properties"]


class TestListBlocks:
    """Test placement_list_blocks."""

    def test_lists_door(self, tools, drawing_path):
        result = run(tools, "placement_list_blocks", {"dxf_path": str(drawing_path)})

        assert result["ok"] is True
        door = next(b for b in result["data"]["blocks"] if b["name"] == "DOOR")
        assert door["attributes"] == ["TAG"]
        assert door["parameters"][0]["name"] == "Width"

    def test_missing_drawing(self, tools, tmp_path):
        result = run(tools, "placement_list_blocks", {"dxf_path": str(tmp_path / "none.dxf")})
        assert result["ok"] is False
        assert result["error"]["code"] == "NOT_FOUND"


class TestInsertBlocks:
    """Test placement_insert_blocks."""

    def test_inline_requests(self, tools, drawing_path, tmp_path):
        output = tmp_path / "out.dxf"
        requests = [
            {"definition": "DOOR", "position": [i * 10, 0], "overrides": {"TAG": "D-01", "Width": 900}}
            for i in range(4)
        ]

        result = run(tools, "placement_insert_blocks", {
            "dxf_path": str(drawing_path),
            "output_path": str(output),
            "requests": requests,
        })

        assert result["ok"] is True
        data = result["data"]
        assert data["placed"] == 4
        assert data["templates"] == 1
        assert data["stats"]["hits"] == 3
        assert data["issues"] == []

        doc = ezdxf.readfile(output)
        inserts = doc.modelspace().query("INSERT")
        assert len(inserts) == 4
        assert {i.get_attrib_text("TAG") for i in inserts} == {"D-01"}
        appid = settings.get_parameter_appid()
        assert read_parameters(inserts[0], appid)[0].value == 900.0

    def test_default_output_path(self, tools, drawing_path):
        result = run(tools, "placement_insert_blocks", {
            "dxf_path": str(drawing_path),
            "requests": [{"definition": "DOOR"}],
        })
        assert result["data"]["output_path"].endswith("plan_placed.dxf")

    def test_batch_file_with_failures(self, tools, drawing_path, tmp_path):
        batch = tmp_path / "batch.yaml"
        batch.write_text(
            "requests:\n"
            "  - definition: DOOR\n"
            "    overrides:\n"
            "      - {name: Colour, value: red, required: true}\n"
            "  - definition: PUMP\n"
        )

        result = run(tools, "placement_insert_blocks", {
            "dxf_path": str(drawing_path),
            "output_path": str(tmp_path / "out.dxf"),
            "requests_file": str(batch),
        })

        assert result["ok"] is True
        data = result["data"]
        assert data["placed"] == 1
        assert data["failed"][0]["definition"] == "PUMP"
        assert data["override_failures"][0]["kind"] == "missing_property"
        assert data["issues"][0]["group"] == "Error in block 'DOOR'"
        assert result["warnings"] == ["1 placements failed"]

    def test_invalid_batch(self, tools, drawing_path):
        result = run(tools, "placement_insert_blocks", {
            "dxf_path": str(drawing_path),
            "requests": [{"definition": "DOOR", "scale": -1}],
        })
        assert result["ok"] is False
        assert result["error"]["code"] == "INVALID_BATCH"


class TestUnknownTool:
    """Test dispatch errors."""

    def test_unknown_tool(self, tools):
        result = run(tools, "placement_explode", {})
        assert result["ok"] is False
        assert "Unknown tool" in result["error"]["message"]
