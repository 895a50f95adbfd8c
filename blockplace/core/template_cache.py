"""
TemplateCache - configure each distinct block setup once, duplicate the rest.

Configuring a freshly inserted block (attribute text layout, dynamic parameter
recompute) is expensive, but large batches tend to repeat the same setup. The
cache keys every request by (definition, override list). The first request for
a key instantiates and configures a template in a staging container; every
request, the first included, then receives a duplicate of that template moved
and scaled into place. Templates are scratch objects: release() deletes them
all, and no template is ever handed to the caller.

Usage:
    with TemplateCache(session, diagnostics=sink) as cache:
        for request in requests:
            insert = cache.place(request)
    # templates deleted here, even if a placement raised
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Tuple

from ezdxf.math import Vec3

from ..config import settings
from ..models.placement import PlacementRequest, PropertyOverride
from .diagnostics import DiagnosticsSink, LoggingSink, Severity
from .errors import (
    CleanupError,
    MissingPropertyError,
    PlacementError,
    PropertyWriteError,
    TemplateConstructionError,
)
from .properties import PropertySet, same_value
from .session import DrawingSession
from .transform import placement_matrix

logger = logging.getLogger(__name__)

OverrideFailureCallback = Callable[[PlacementError, PropertyOverride, Any], None]


# ============================================================================
# Key
# ============================================================================

def _same_override(a: Tuple[str, Any], b: Tuple[str, Any]) -> bool:
    return a[0] == b[0] and same_value(a[1], b[1])


class TemplateKey:
    """
    Structural cache key: definition identity plus override list.

    Overrides compare by case-insensitive name and type-strict value equality
    (True, 1 and 1.0 are distinct). The ordered policy also requires the same
    order; the unordered policy compares the overrides as a multiset. The hash
    covers only the definition and names, since override values may be
    unhashable.
    """

    __slots__ = ("definition_id", "overrides", "ordered", "_hash")

    def __init__(self, definition_id: Hashable, overrides: Sequence[PropertyOverride],
                 ordered: bool = True):
        self.definition_id = definition_id
        self.overrides: Tuple[Tuple[str, Any], ...] = tuple(
            (o.name.casefold(), o.value) for o in overrides
        )
        self.ordered = ordered

        names = tuple(name for name, _ in self.overrides)
        if not ordered:
            names = tuple(sorted(names))
        self._hash = hash((definition_id, names))

    @classmethod
    def from_request(cls, request: PlacementRequest, ordered: bool = True) -> "TemplateKey":
        return cls(request.definition_id, request.overrides, ordered)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other) -> bool:
        if not isinstance(other, TemplateKey):
            return NotImplemented
        if self.ordered != other.ordered or not same_value(self.definition_id, other.definition_id):
            return False
        if len(self.overrides) != len(other.overrides):
            return False
        if self.ordered:
            return all(_same_override(a, b) for a, b in zip(self.overrides, other.overrides))

        remaining = list(other.overrides)
        for item in self.overrides:
            for i, candidate in enumerate(remaining):
                if _same_override(item, candidate):
                    del remaining[i]
                    break
            else:
                return False
        return True

    def __repr__(self) -> str:
        return f"TemplateKey({self.definition_id!r}, {list(self.overrides)!r})"


# ============================================================================
# Stats
# ============================================================================

@dataclass
class CacheStats:
    """Counters over the lifetime of a cache; release() keeps them."""
    placements: int = 0
    hits: int = 0
    misses: int = 0
    override_failures: int = 0
    templates_released: int = 0
    cleanup_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# ============================================================================
# TemplateCache
# ============================================================================

class TemplateCache:
    """
    Owns one configured template instance per distinct TemplateKey.

    Single-writer and synchronous: not designed for concurrent place() calls.
    Property failures are reported and never abort a placement; only
    structural host failures raise TemplateConstructionError.
    """

    def __init__(
        self,
        session: DrawingSession,
        diagnostics: Optional[DiagnosticsSink] = None,
        staging_container: Any = None,
        scale_tolerance: Optional[float] = None,
        unordered_keys: Optional[bool] = None,
    ):
        """
        Initialize an empty cache.

        Args:
            session: Host document primitives
            diagnostics: Issue sink (default: LoggingSink)
            staging_container: Where templates live (default: session.staging_container)
            scale_tolerance: Unit-scale tolerance (default: settings)
            unordered_keys: Compare overrides as a multiset (default: feature flag)
        """
        self.session = session
        self.diagnostics = diagnostics if diagnostics is not None else LoggingSink()
        self._staging_container = staging_container
        self.scale_tolerance = (
            scale_tolerance if scale_tolerance is not None else settings.get_scale_tolerance()
        )
        self.ordered_keys = not (
            unordered_keys if unordered_keys is not None
            else settings.is_enabled('order_insensitive_template_keys')
        )
        self._templates: Dict[TemplateKey, Any] = {}
        self.stats = CacheStats()

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, key: TemplateKey) -> bool:
        return key in self._templates

    def keys(self) -> List[TemplateKey]:
        return list(self._templates)

    def key_for(self, request: PlacementRequest) -> TemplateKey:
        return TemplateKey.from_request(request, ordered=self.ordered_keys)

    @property
    def staging_container(self) -> Any:
        if self._staging_container is not None:
            return self._staging_container
        return self.session.staging_container

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def place(self, request: PlacementRequest,
              on_override_failure: Optional[OverrideFailureCallback] = None) -> Any:
        """
        Place one block instance.

        Args:
            request: Placement request
            on_override_failure: Called as (error, override, template) for each
                override that could not be applied

        Returns:
            The placed instance, owned by the caller

        Raises:
            TemplateConstructionError: If the host cannot instantiate,
                duplicate or transform
        """
        key = self.key_for(request)
        template = self._templates.get(key)

        if template is None:
            self.stats.misses += 1
            logger.debug(f"Template cache miss for {key!r}")
            template = self._build_template(request, on_override_failure)
            self._templates[key] = template
        else:
            self.stats.hits += 1

        instance = self._realize(template, request)
        self.stats.placements += 1
        return instance

    def _build_template(self, request: PlacementRequest,
                        on_override_failure: Optional[OverrideFailureCallback]) -> Any:
        """Instantiate at the origin of the staging container and apply overrides."""
        definition_id = request.definition_id

        try:
            template = self.session.instantiate(definition_id, self.staging_container, Vec3())
        except Exception as e:
            raise TemplateConstructionError(
                f"Cannot instantiate block definition {definition_id!r}: {e}"
            ) from e

        try:
            props = self.session.scan(template, definition_id, self.diagnostics)
        except Exception as e:
            self._discard(template)
            raise TemplateConstructionError(
                f"Cannot read properties of block {definition_id!r}: {e}"
            ) from e

        # a raising callback or sink must not leave an unowned template behind
        try:
            for override in request.overrides:
                self._apply_override(props, override, template, on_override_failure)
        except BaseException:
            self._discard(template)
            raise

        return template

    def _apply_override(self, props: PropertySet, override: PropertyOverride, template: Any,
                        on_override_failure: Optional[OverrideFailureCallback]) -> None:
        prop = props.get_property(override.name, required=override.required,
                                  exact_match=override.exact_match)
        if prop is None:
            if override.required:
                self._override_failed(
                    MissingPropertyError(override.name, props.block_name),
                    override, template, on_override_failure,
                )
            else:
                logger.debug(f"Optional property '{override.name}' not in block '{props.block_name}'")
            return

        try:
            props.write(prop, override.value)
        except PropertyWriteError as e:
            props.report_error(e, Severity.ERROR if override.required else Severity.WARNING)
            self._override_failed(e, override, template, on_override_failure)

    def _override_failed(self, error: PlacementError, override: PropertyOverride, template: Any,
                         on_override_failure: Optional[OverrideFailureCallback]) -> None:
        self.stats.override_failures += 1
        if on_override_failure is not None:
            on_override_failure(error, override, template)

    def _realize(self, template: Any, request: PlacementRequest) -> Any:
        """Duplicate the template into the target container and move it into place."""
        container = request.target_container
        if container is None:
            container = self.session.default_container

        try:
            instance = self.session.duplicate(template, container)
        except Exception as e:
            raise TemplateConstructionError(
                f"Cannot duplicate template of {request.definition_id!r}: {e}"
            ) from e

        try:
            matrix = placement_matrix(
                self.session.reference_point(instance),
                request.point,
                request.scale,
                self.scale_tolerance,
            )
            if matrix is not None:
                self.session.transform(instance, matrix)
        except Exception as e:
            self._discard(instance)
            raise TemplateConstructionError(
                f"Cannot transform placement of {request.definition_id!r}: {e}"
            ) from e

        return instance

    # ------------------------------------------------------------------
    # Disposal
    # ------------------------------------------------------------------

    def release(self) -> None:
        """
        Delete every template. Idempotent.

        Every delete is attempted; failures are logged and counted but never
        raised. The cache is empty (and reusable) afterwards.
        """
        templates = list(self._templates.values())
        self._templates.clear()

        for template in templates:
            try:
                self.session.delete(template)
            except Exception as e:
                self.stats.cleanup_failures += 1
                logger.warning(str(CleanupError(f"Failed to delete template {template!r}: {e}")))
            else:
                self.stats.templates_released += 1

        if templates:
            logger.info(
                f"Released {len(templates)} templates "
                f"({self.stats.placements} placements, {self.stats.hits} hits, "
                f"{self.stats.misses} misses)"
            )

    def _discard(self, instance: Any) -> None:
        """Best-effort delete of a half-built instance."""
        try:
            self.session.delete(instance)
        except Exception as e:
            logger.warning(f"Failed to discard instance {instance!r}: {e}")

    def __enter__(self) -> "TemplateCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
