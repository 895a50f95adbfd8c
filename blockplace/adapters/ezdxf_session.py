"""
DXF host document via ezdxf.

Mapping:
    block definition  -> BLOCK (definition_id is the block name)
    block instance    -> INSERT entity
    container         -> layout (modelspace, paperspace or block layout)
    fixed-text field  -> ATTRIB entity (embedded MTEXT attributes are rich text)
    parametric field  -> XDATA entry on the INSERT

DXF has no portable dynamic block parameters, so parameters are stored as
XDATA under an application id (default BLOCKPLACE_PARAMS). Each parameter is
a control-string group:

    (1002, "{"), (1000, <name>), [<value tag>], (1002, "}")

The value tag's group code is the parameter's runtime type: 1040 real,
1070/1071 integer, 1000 string; a group without a value tag is a null
parameter. Defaults live on the block record and are copied to every new
INSERT.

Usage:
    doc = ezdxf.readfile("plan.dxf")
    define_parameters(doc, "DOOR", {"Width": 900.0, "Leaves": 1})
    session = EzdxfSession(doc)
    with TemplateCache(session) as cache:
        cache.place(PlacementRequest(definition_id="DOOR", position=(10, 5)))
    doc.saveas("plan_out.dxf")
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Hashable, List, Mapping, Optional, Union

import ezdxf
from ezdxf.document import Drawing
from ezdxf.entities import Attrib, DXFEntity, Insert
from ezdxf.math import Matrix44, Vec3

from ..config import settings
from ..core.fields import ParameterField, ParamTypeCode, TextField
from ..core.session import DrawingSession
from .errors import DefinitionNotFoundError

logger = logging.getLogger(__name__)

_GROUP_OPEN = (1002, "{")
_GROUP_CLOSE = (1002, "}")

_CODE_TO_TYPE = {
    1040: ParamTypeCode.REAL,
    1070: ParamTypeCode.INTEGER,
    1071: ParamTypeCode.INTEGER,
    1000: ParamTypeCode.STRING,
}


# ============================================================================
# Parameter XDATA encoding
# ============================================================================

@dataclass(frozen=True)
class StoredParameter:
    """One parameter as stored in XDATA."""
    name: str
    code: Optional[int] = None
    value: Any = None

    @property
    def type_code(self) -> ParamTypeCode:
        if self.code is None:
            return ParamTypeCode.NULL
        return _CODE_TO_TYPE.get(self.code, ParamTypeCode.OTHER)


def code_for_value(value: Any) -> Optional[int]:
    """XDATA group code for a Python value (None for a null parameter)."""
    if value is None:
        return None
    if isinstance(value, bool) or isinstance(value, int):
        return 1071
    if isinstance(value, float):
        return 1040
    if isinstance(value, str):
        return 1000
    raise TypeError(f"Unsupported parameter value type: {type(value).__name__}")


def ensure_appid(doc: Drawing, appid: str) -> None:
    """Register the XDATA application id if the document lacks it."""
    if not doc.appids.has_entry(appid):
        doc.appids.new(appid)


def read_parameters(entity: DXFEntity, appid: str) -> List[StoredParameter]:
    """Decode the parameter groups stored on an entity."""
    if not entity.has_xdata(appid):
        return []

    parameters = []
    current: Optional[List[tuple]] = None
    for tag in entity.get_xdata(appid):
        pair = (tag.code, tag.value)
        if pair == _GROUP_OPEN:
            current = []
        elif pair == _GROUP_CLOSE:
            if current:
                name = current[0][1]
                if len(current) > 1:
                    code, value = current[1]
                    parameters.append(StoredParameter(name, code, value))
                else:
                    parameters.append(StoredParameter(name))
            current = None
        elif current is not None:
            current.append(pair)

    return parameters


def write_parameters(entity: DXFEntity, appid: str, parameters: List[StoredParameter]) -> None:
    """Encode parameters into the entity's XDATA, replacing existing ones."""
    tags = []
    for parameter in parameters:
        tags.append(_GROUP_OPEN)
        tags.append((1000, parameter.name))
        if parameter.code is not None:
            tags.append((parameter.code, parameter.value))
        tags.append(_GROUP_CLOSE)
    entity.set_xdata(appid, tags)


def define_parameters(doc: Drawing, block_name: str, parameters: Mapping[str, Any],
                      appid: Optional[str] = None) -> None:
    """
    Store parameter defaults on a block definition.

    Args:
        doc: DXF document
        block_name: Existing block name
        parameters: Parameter name -> default (float, int, str or None)
        appid: XDATA application id (default from settings)

    Raises:
        DefinitionNotFoundError: If the block does not exist
        TypeError: If a default has an unsupported type
    """
    appid = appid or settings.get_parameter_appid()
    block = doc.blocks.get(block_name)
    if block is None:
        raise DefinitionNotFoundError(block_name)

    ensure_appid(doc, appid)
    stored = [StoredParameter(name, code_for_value(value), value) for name, value in parameters.items()]
    write_parameters(block.block_record, appid, stored)


# ============================================================================
# Fields
# ============================================================================

class EzdxfAttributeField(TextField):
    """ATTRIB entity of an INSERT."""

    def __init__(self, attrib: Attrib):
        self.attrib = attrib

    @property
    def tag(self) -> str:
        return self.attrib.dxf.tag

    @property
    def text(self) -> str:
        return self.attrib.dxf.get("text", "")

    @property
    def is_rich_text(self) -> bool:
        return self.attrib.has_embedded_mtext_entity

    def set_text(self, text: str) -> None:
        self.attrib.dxf.text = text

    def set_rich_contents(self, text: str) -> None:
        mtext = self.attrib.virtual_mtext_entity()
        mtext.text = text
        self.attrib.embed_mtext(mtext)
        # single-line fallback for readers without MTEXT attribute support
        self.attrib.dxf.text = text

    @property
    def has_default_alignment(self) -> bool:
        return self.attrib.dxf.get("halign", 0) == 0 and self.attrib.dxf.get("valign", 0) == 0

    def adjust_alignment(self) -> None:
        align, p1, p2 = self.attrib.get_placement()
        self.attrib.set_placement(p1, p2, align)


class EzdxfParameterField(ParameterField):
    """Parameter stored in the XDATA of an INSERT."""

    def __init__(self, insert: Insert, appid: str, index: int, stored: StoredParameter):
        self.insert = insert
        self.appid = appid
        self.index = index
        self._stored = stored

    @property
    def name(self) -> str:
        return self._stored.name

    @property
    def type_code(self) -> ParamTypeCode:
        return self._stored.type_code

    @property
    def value(self) -> Any:
        return self._stored.value

    @value.setter
    def value(self, new_value: Any) -> None:
        parameters = read_parameters(self.insert, self.appid)
        updated = replace(parameters[self.index], value=new_value)
        parameters[self.index] = updated
        write_parameters(self.insert, self.appid, parameters)
        self._stored = updated


# ============================================================================
# Session
# ============================================================================

class EzdxfSession(DrawingSession):
    """DrawingSession over an open ezdxf document.

    Args:
        doc: DXF document
        target: Default layout for placements (default: modelspace)
        staging: Layout holding templates (default: modelspace)
        appid: XDATA application id for parameters (default from settings)
    """

    def __init__(self, doc: Drawing, target: Any = None, staging: Any = None,
                 appid: Optional[str] = None):
        self.doc = doc
        self._target = target if target is not None else doc.modelspace()
        self._staging = staging if staging is not None else doc.modelspace()
        self.appid = appid or settings.get_parameter_appid()
        ensure_appid(doc, self.appid)

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs) -> "EzdxfSession":
        """Open a DXF file and wrap it in a session."""
        doc = ezdxf.readfile(str(path))
        logger.info(f"Opened DXF document {path}")
        return cls(doc, **kwargs)

    def layout(self, name: Optional[str] = None) -> Any:
        """Layout by name; None or 'Model' is the modelspace, else paperspace or block."""
        if name is None or name.lower() == "model":
            return self.doc.modelspace()
        if name in self.doc.layouts:
            return self.doc.layouts.get(name)
        block = self.doc.blocks.get(name)
        if block is None:
            raise KeyError(f"Layout not found: {name}")
        return block

    def use_layout(self, name: Optional[str]) -> None:
        """Send placements without an explicit target to the named layout."""
        self._target = self.layout(name)

    def describe_blocks(self) -> List[Dict[str, Any]]:
        """Named block definitions with their attribute tags and parameters."""
        blocks = []
        for block in self.doc.blocks:
            if block.name.startswith("*") or block.is_any_layout:
                continue
            blocks.append({
                "name": block.name,
                "attributes": [attdef.dxf.tag for attdef in block.attdefs()],
                "parameters": [
                    {"name": p.name, "type": p.type_code.name.lower(), "value": p.value}
                    for p in read_parameters(block.block_record, self.appid)
                ],
            })
        return blocks

    # ------------------------------------------------------------------
    # DrawingSession
    # ------------------------------------------------------------------

    @property
    def staging_container(self) -> Any:
        return self._staging

    @property
    def default_container(self) -> Any:
        return self._target

    def definition_name(self, definition_id: Hashable) -> str:
        return str(definition_id)

    def instantiate(self, definition_id: Hashable, container: Any, point: Vec3) -> Insert:
        block = self.doc.blocks.get(definition_id)
        if block is None:
            raise DefinitionNotFoundError(definition_id)

        insert = container.add_blockref(definition_id, point)
        values = {
            attdef.dxf.tag: attdef.dxf.get("text", "")
            for attdef in block.attdefs()
            if not attdef.is_const
        }
        if values:
            insert.add_auto_attribs(values)

        parameters = read_parameters(block.block_record, self.appid)
        if parameters:
            write_parameters(insert, self.appid, parameters)

        return insert

    def duplicate(self, instance: Insert, container: Any) -> Insert:
        clone = instance.copy()
        container.add_entity(clone)
        return clone

    def transform(self, instance: Insert, matrix: Matrix44) -> None:
        instance.transform(matrix)

    def reference_point(self, instance: Insert) -> Vec3:
        return Vec3(instance.dxf.insert)

    def attribute_fields(self, instance: Insert) -> List[TextField]:
        return [EzdxfAttributeField(attrib) for attrib in instance.attribs]

    def parameter_fields(self, instance: Insert) -> List[ParameterField]:
        return [
            EzdxfParameterField(instance, self.appid, index, stored)
            for index, stored in enumerate(read_parameters(instance, self.appid))
        ]

    def delete(self, instance: Insert) -> None:
        layout = instance.get_layout()
        if layout is None:
            raise RuntimeError(f"INSERT {instance.dxf.handle} is not owned by a layout")
        layout.delete_entity(instance)
