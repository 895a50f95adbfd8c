"""
Tests for TemplateCache - configure once, duplicate many

Tests cover:
1. One instantiation per distinct key, one duplicate per placement
2. Key sensitivity (definition, values, order) and the unordered policy
3. Final position and scale of placed instances
4. Resilience to override failures and the failure callback
5. Construction failures propagate
6. release(): idempotent, never raises, leaves a reusable cache
"""

import pytest
from ezdxf.math import Vec3

from blockplace.adapters.memory_session import (
    MODEL_SPACE,
    STAGING_SPACE,
    AttributeDefinition,
    InMemoryDrawing,
    ParameterDefinition,
)
from blockplace.config import settings
from blockplace.core.diagnostics import CollectingSink
from blockplace.core.errors import (
    IssueKind,
    MissingPropertyError,
    PropertyWriteError,
    TemplateConstructionError,
)
from blockplace.core.fields import ParamTypeCode
from blockplace.core.template_cache import TemplateCache, TemplateKey
from blockplace.models.placement import PlacementRequest, PropertyOverride


def door(position=(0, 0, 0), scale=1.0, **overrides):
    return PlacementRequest(
        definition_id="DOOR",
        position=position,
        scale=scale,
        overrides=[PropertyOverride(name=k, value=v) for k, v in overrides.items()],
    )


@pytest.fixture
def drawing():
    drawing = InMemoryDrawing()
    drawing.define_block(
        "DOOR",
        attributes=[AttributeDefinition("TAG", "?")],
        parameters=[
            ParameterDefinition("Width", ParamTypeCode.REAL, 800.0),
            ParameterDefinition("Leaves", ParamTypeCode.INTEGER, 1),
        ],
    )
    drawing.define_block("WINDOW", attributes=[AttributeDefinition("TAG", "?")])
    return drawing


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def cache(drawing, sink):
    return TemplateCache(drawing, diagnostics=sink, unordered_keys=False)


class TestTemplateKey:
    """Test structural key equality."""

    def test_same_definition_and_overrides_equal(self):
        a = TemplateKey.from_request(door(TAG="A", Width=900))
        b = TemplateKey.from_request(door(position=(5, 5), TAG="A", Width=900))
        assert a == b
        assert hash(a) == hash(b)

    def test_name_case_ignored(self):
        a = TemplateKey("DOOR", [PropertyOverride(name="tag", value="A")])
        b = TemplateKey("DOOR", [PropertyOverride(name="TAG", value="A")])
        assert a == b

    def test_value_and_definition_matter(self):
        base = TemplateKey("DOOR", [PropertyOverride(name="TAG", value="A")])
        assert base != TemplateKey("DOOR", [PropertyOverride(name="TAG", value="B")])
        assert base != TemplateKey("WINDOW", [PropertyOverride(name="TAG", value="A")])

    def test_order_matters_by_default(self):
        a = TemplateKey.from_request(door(TAG="A", Width=900))
        b = TemplateKey.from_request(door(Width=900, TAG="A"))
        assert a != b

    def test_unordered_policy(self):
        a = TemplateKey.from_request(door(TAG="A", Width=900), ordered=False)
        b = TemplateKey.from_request(door(Width=900, TAG="A"), ordered=False)
        assert a == b
        assert hash(a) == hash(b)

    def test_value_type_matters(self):
        keys = [TemplateKey("DOOR", [PropertyOverride(name="TAG", value=v)]) for v in (True, 1, 1.0)]
        assert keys[0] != keys[1]
        assert keys[1] != keys[2]
        assert keys[0] != keys[2]

    def test_unhashable_values_supported(self):
        a = TemplateKey("DOOR", [PropertyOverride(name="Size", value=[1, 2])])
        b = TemplateKey("DOOR", [PropertyOverride(name="Size", value=[1, 2])])
        assert a == b


class TestConfigureOnce:
    """Test instantiate / duplicate counts."""

    def test_one_template_for_repeated_requests(self, drawing, cache):
        for i in range(10):
            cache.place(door(position=(i * 10, 0), TAG="D-01"))

        assert drawing.counters["instantiate"] == 1
        assert drawing.counters["duplicate"] == 10
        assert len(cache) == 1
        assert cache.stats.hits == 9
        assert cache.stats.misses == 1
        assert len(drawing.instances(MODEL_SPACE)) == 10

    def test_distinct_overrides_get_distinct_templates(self, drawing, cache):
        cache.place(door(TAG="A"))
        cache.place(door(TAG="B"))
        cache.place(door(TAG="A"))

        assert drawing.counters["instantiate"] == 2
        assert len(cache) == 2
        assert cache.keys() == [cache.key_for(door(TAG="A")), cache.key_for(door(TAG="B"))]
        assert cache.key_for(door(TAG="B")) in cache
        assert cache.key_for(door(TAG="C")) not in cache

    def test_bool_int_float_values_get_distinct_templates(self, drawing, cache):
        texts = [cache.place(door(TAG=value)).attributes[0].text for value in (True, 1, 1.0)]

        assert texts == ["True", "1", "1.0"]
        assert drawing.counters["instantiate"] == 3

    def test_override_order_makes_new_template(self, drawing, cache):
        cache.place(door(TAG="A", Width=900))
        cache.place(door(Width=900, TAG="A"))
        assert drawing.counters["instantiate"] == 2

    def test_unordered_flag_shares_template(self, drawing, sink):
        settings.set_flag('order_insensitive_template_keys', True)
        try:
            cache = TemplateCache(drawing, diagnostics=sink)
            cache.place(door(TAG="A", Width=900))
            cache.place(door(Width=900, TAG="A"))
        finally:
            settings.set_flag('order_insensitive_template_keys', False)

        assert drawing.counters["instantiate"] == 1

    def test_template_lives_in_staging(self, drawing, cache):
        cache.place(door(TAG="A"))
        staged = drawing.instances(STAGING_SPACE)
        assert len(staged) == 1
        assert staged[0].position == Vec3()


class TestPlacedInstances:
    """Test what the caller receives."""

    def test_overrides_applied(self, cache):
        instance = cache.place(door(TAG="D-07", Width="950"))

        assert instance.attributes[0].text == "D-07"
        assert instance.parameters[0].value == 950.0
        assert instance.parameters[1].value == 1

    def test_position_and_scale(self, drawing, cache):
        instance = cache.place(door(position=(10, 5, 0), scale=2.0))

        assert instance.position.isclose(Vec3(10, 5, 0))
        assert instance.scale == pytest.approx(2.0)
        assert instance.container == MODEL_SPACE

    def test_scale_not_baked_into_template(self, cache):
        cache.place(door(position=(1, 1), scale=3.0))
        second = cache.place(door(position=(2, 2)))
        assert second.scale == pytest.approx(1.0)

    def test_unit_scale_at_origin_needs_no_transform(self, drawing, cache):
        cache.place(door())
        assert drawing.counters["transform"] == 0

    def test_instances_are_independent(self, cache):
        a = cache.place(door(TAG="X"))
        b = cache.place(door(TAG="X"))
        a.attributes[0].set_text("changed")
        assert b.attributes[0].text == "X"

    def test_explicit_target_container(self, drawing, cache):
        drawing.add_container("SHEET-2")
        request = door(TAG="A").model_copy(update={"target_container": "SHEET-2"})

        instance = cache.place(request)
        assert instance.container == "SHEET-2"
        assert drawing.instances("SHEET-2") == [instance]


class TestOverrideFailures:
    """Test that property failures never abort a placement."""

    def test_missing_optional_override_ignored(self, cache, sink):
        instance = cache.place(door(Colour="red"))
        assert instance is not None
        assert not sink.issues
        assert cache.stats.override_failures == 0

    def test_missing_required_override_reported_and_called_back(self, cache, sink):
        calls = []
        request = PlacementRequest(
            definition_id="DOOR",
            overrides=[PropertyOverride(name="Colour", value="red", required=True)],
        )

        instance = cache.place(request, on_override_failure=lambda *args: calls.append(args))

        assert instance is not None
        assert len(sink.of_kind(IssueKind.MISSING_PROPERTY)) == 1
        assert len(calls) == 1
        error, override, template = calls[0]
        assert isinstance(error, MissingPropertyError)
        assert override.name == "Colour"
        assert template is not instance

    def test_unwritable_value_reported_once(self, cache, sink):
        calls = []
        instance = cache.place(door(Leaves="many", TAG="ok"),
                               on_override_failure=lambda *args: calls.append(args))

        assert len(sink.of_kind(IssueKind.WRITE_FAILURE)) == 1
        assert isinstance(calls[0][0], PropertyWriteError)
        # later overrides still applied
        assert instance.attributes[0].text == "ok"

    def test_raising_callback_leaves_no_template(self, drawing, sink):
        def abort(error, override, template):
            raise RuntimeError("stop the batch")

        with pytest.raises(RuntimeError, match="stop the batch"):
            with TemplateCache(drawing, diagnostics=sink, unordered_keys=False) as cache:
                cache.place(door(Leaves="many"), on_override_failure=abort)

        assert len(cache) == 0
        assert drawing.instances(STAGING_SPACE) == []
        assert drawing.instances(MODEL_SPACE) == []

    def test_callback_only_on_template_build(self, cache):
        calls = []
        for _ in range(3):
            cache.place(door(Leaves="many"), on_override_failure=lambda *args: calls.append(args))
        assert len(calls) == 1


class TestConstructionFailures:
    """Test structural failures."""

    def test_unknown_definition(self, cache):
        with pytest.raises(TemplateConstructionError, match="NOPE"):
            cache.place(PlacementRequest(definition_id="NOPE"))
        assert len(cache) == 0

    def test_duplicate_failure(self, drawing, cache, monkeypatch):
        def broken(instance, container):
            raise RuntimeError("out of handles")

        monkeypatch.setattr(drawing, "duplicate", broken)
        with pytest.raises(TemplateConstructionError, match="out of handles"):
            cache.place(door())

    def test_unknown_container(self, cache):
        request = door().model_copy(update={"target_container": "NOWHERE"})
        with pytest.raises(TemplateConstructionError):
            cache.place(request)


class TestRelease:
    """Test template disposal."""

    def test_release_deletes_templates_only(self, drawing, cache):
        cache.place(door(TAG="A"))
        cache.place(door(TAG="B"))
        cache.release()

        assert len(cache) == 0
        assert drawing.instances(STAGING_SPACE) == []
        assert len(drawing.instances(MODEL_SPACE)) == 2
        assert cache.stats.templates_released == 2

    def test_release_idempotent(self, drawing, cache):
        cache.place(door())
        cache.release()
        cache.release()
        assert drawing.counters["delete"] == 1

    def test_cache_reusable_after_release(self, drawing, cache):
        cache.place(door(TAG="A"))
        cache.release()
        cache.place(door(TAG="A"))
        assert drawing.counters["instantiate"] == 2

    def test_delete_failure_swallowed(self, drawing, cache, monkeypatch, caplog):
        cache.place(door(TAG="A"))
        cache.place(door(TAG="B"))

        real_delete = drawing.delete
        attempts = []

        def flaky(instance):
            attempts.append(instance)
            if len(attempts) == 1:
                raise RuntimeError("locked layer")
            real_delete(instance)

        monkeypatch.setattr(drawing, "delete", flaky)
        cache.release()

        assert len(attempts) == 2
        assert len(cache) == 0
        assert cache.stats.cleanup_failures == 1
        assert "locked layer" in caplog.text

    def test_context_manager_releases_on_error(self, drawing, sink):
        with pytest.raises(TemplateConstructionError):
            with TemplateCache(drawing, diagnostics=sink) as cache:
                cache.place(door(TAG="A"))
                cache.place(PlacementRequest(definition_id="NOPE"))

        assert drawing.instances(STAGING_SPACE) == []
        assert len(drawing.instances(MODEL_SPACE)) == 1
