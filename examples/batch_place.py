#!/usr/bin/env python3
"""
Batch Placement Example
Creates a drawing with a parametric DOOR block and places a door schedule into it.
"""

import asyncio
from pathlib import Path
import sys
sys.path.append(str(Path(__file__).parent.parent))

import ezdxf

from blockplace.adapters.ezdxf_session import define_parameters
from blockplace.tools.placement_tools import PlacementTools


def create_drawing(path: Path) -> None:
    """Write a drawing containing one attributed, parametric block."""
    doc = ezdxf.new()
    door = doc.blocks.new(name="DOOR")
    door.add_lwpolyline([(0, 0), (1, 0), (1, 0.05), (0, 0.05)], close=True)
    door.add_attdef("TAG", (0, 0.2), text="?", dxfattribs={"height": 0.1})
    define_parameters(doc, "DOOR", {"Width": 900.0, "Leaves": 1})
    doc.saveas(path)


async def place_doors():
    """Place a door schedule from the YAML batch next to this script."""
    print("Batch Placement Example...")
    print("=" * 50)

    workdir = Path("/tmp/example_projects/batch_place")
    workdir.mkdir(parents=True, exist_ok=True)
    drawing = workdir / "plan.dxf"

    print(f"\n1. Creating drawing {drawing}")
    create_drawing(drawing)

    tools = PlacementTools()

    print("\n2. Listing blocks")
    listing = await tools.handle_tool("placement_list_blocks", {"dxf_path": str(drawing)})
    if not listing.get("ok"):
        raise RuntimeError(listing)
    for block in listing["data"]["blocks"]:
        print(f"   {block['name']}: attributes={block['attributes']}")

    print("\n3. Placing door schedule")
    result = await tools.handle_tool("placement_insert_blocks", {
        "dxf_path": str(drawing),
        "output_path": str(workdir / "plan_doors.dxf"),
        "requests_file": str(Path(__file__).parent / "door_batch.yaml"),
    })
    if not result.get("ok"):
        raise RuntimeError(result)

    data = result["data"]
    print(f"   {data['message']} using {data['templates']} templates")
    print(f"   Saved to {data['output_path']}")
    for issue in data["issues"]:
        print(f"   [{issue['severity']}] {issue['message']}")


if __name__ == "__main__":
    asyncio.run(place_doors())
