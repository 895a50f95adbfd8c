"""
Block placement tools for MCP.

Provides tools to inspect the block definitions of a DXF drawing and to run a
batch of placement requests against it through a TemplateCache.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import ezdxf
from mcp import Tool

from ..adapters.ezdxf_session import EzdxfSession
from ..core.diagnostics import CollectingSink
from ..core.errors import PlacementError, TemplateConstructionError
from ..core.template_cache import TemplateCache
from ..models.placement import BatchLoadError, PropertyOverride, load_requests, parse_requests
from ..utils.response import error_response, issue_list, success_response

logger = logging.getLogger(__name__)


class PlacementTools:
    """Handles block placement MCP tools."""

    def get_tools(self) -> List[Tool]:
        """Return all placement tools."""
        return [
            Tool(
                name="placement_list_blocks",
                description="List block definitions of a DXF drawing with their attribute tags and parameters",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "dxf_path": {
                            "type": "string",
                            "description": "Path to the DXF drawing"
                        }
                    },
                    "required": ["dxf_path"]
                }
            ),
            Tool(
                name="placement_insert_blocks",
                description=(
                    "Insert many blocks into a DXF drawing. Requests sharing a block and "
                    "property values are configured once and duplicated."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "dxf_path": {
                            "type": "string",
                            "description": "Path to the source DXF drawing"
                        },
                        "output_path": {
                            "type": "string",
                            "description": "Where to save the result (default: <name>_placed.dxf)"
                        },
                        "requests": {
                            "type": "array",
                            "description": "Placement requests",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "definition": {"type": "string"},
                                    "position": {"type": "array", "items": {"type": "number"}},
                                    "scale": {"type": "number", "default": 1.0},
                                    "overrides": {
                                        "type": "array",
                                        "items": {
                                            "type": "object",
                                            "properties": {
                                                "name": {"type": "string"},
                                                "value": {},
                                                "exact_match": {"type": "boolean", "default": True},
                                                "required": {"type": "boolean", "default": False}
                                            },
                                            "required": ["name"]
                                        }
                                    }
                                },
                                "required": ["definition"]
                            }
                        },
                        "requests_file": {
                            "type": "string",
                            "description": "YAML or JSON batch file (alternative to 'requests')"
                        },
                        "layout": {
                            "type": "string",
                            "description": "Target layout or block name (default: Model)"
                        },
                        "unordered_keys": {
                            "type": "boolean",
                            "description": "Share templates for overrides given in any order"
                        }
                    },
                    "required": ["dxf_path"]
                }
            ),
        ]

    async def handle_tool(self, tool_name: str, args: dict) -> dict:
        """
        Route tool calls to appropriate handler.

        Args:
            tool_name: Name of the tool
            args: Tool arguments

        Returns:
            Response dict
        """
        handlers = {
            "placement_list_blocks": self._list_blocks,
            "placement_insert_blocks": self._insert_blocks,
        }

        handler = handlers.get(tool_name)
        if not handler:
            return error_response(f"Unknown tool: {tool_name}")

        try:
            return await handler(args)
        except Exception as e:
            logger.exception(f"Placement tool error: {tool_name}")
            return error_response(str(e))

    # ========================================================================
    # Tool Handlers
    # ========================================================================

    async def _list_blocks(self, args: dict) -> dict:
        """
        List block definitions of a drawing.

        Args:
            args: {"dxf_path": "plan.dxf"}
        """
        dxf_path = Path(args["dxf_path"])
        if not dxf_path.exists():
            return error_response(f"Drawing not found: {dxf_path}", code="NOT_FOUND")

        session = EzdxfSession.from_file(dxf_path)
        blocks = session.describe_blocks()

        return success_response(
            data={
                "message": f"Found {len(blocks)} block definitions",
                "blocks": blocks,
                "count": len(blocks),
            }
        )

    async def _insert_blocks(self, args: dict) -> dict:
        """
        Run one placement batch against a drawing and save it.

        Args:
            args: {
                "dxf_path": "plan.dxf",
                "output_path": "plan_out.dxf",
                "requests": [...] | "requests_file": "batch.yaml",
                "layout": "Model",
                "unordered_keys": false
            }

        Returns:
            Response with placement counts, cache statistics and issues
        """
        dxf_path = Path(args["dxf_path"])
        if not dxf_path.exists():
            return error_response(f"Drawing not found: {dxf_path}", code="NOT_FOUND")

        try:
            if args.get("requests_file"):
                requests = load_requests(args["requests_file"])
            else:
                requests = parse_requests(args.get("requests", []))
        except BatchLoadError as e:
            return error_response(str(e), code="INVALID_BATCH")

        output_path = Path(
            args.get("output_path") or dxf_path.with_name(f"{dxf_path.stem}_placed.dxf")
        )

        try:
            session = EzdxfSession.from_file(dxf_path)
        except (IOError, ezdxf.DXFStructureError) as e:
            return error_response(f"Cannot read drawing {dxf_path}: {e}", code="INVALID_DXF")

        if args.get("layout"):
            session.use_layout(args["layout"])

        sink = CollectingSink()
        override_failures: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []
        placed = 0

        def on_override_failure(error: PlacementError, override: PropertyOverride, template: Any) -> None:
            override_failures.append({
                "property": override.name,
                "value": override.value,
                "kind": error.kind.value,
                "message": str(error),
            })

        with TemplateCache(session, diagnostics=sink,
                           unordered_keys=args.get("unordered_keys")) as cache:
            for index, request in enumerate(requests):
                try:
                    cache.place(request, on_override_failure=on_override_failure)
                    placed += 1
                except TemplateConstructionError as e:
                    logger.error(f"Placement #{index} failed: {e}")
                    failed.append({"index": index, "definition": str(request.definition_id), "error": str(e)})
            stats = cache.stats

        session.doc.saveas(str(output_path))
        logger.info(f"Placed {placed}/{len(requests)} blocks into {output_path}")

        warnings = [f"{len(failed)} placements failed"] if failed else None
        return success_response(
            data={
                "message": f"Placed {placed} of {len(requests)} blocks",
                "output_path": str(output_path),
                "placed": placed,
                "failed": failed,
                "templates": stats.misses,
                "stats": stats.to_dict(),
                "override_failures": override_failures,
                "issues": issue_list(sink.issues),
            },
            warnings=warnings,
        )
