"""Tests for capability probing, the model pool and model selection."""

import pytest

from modelbridge.models.capabilities import DynamicModelCriteria, ModelCapabilities, ModelPool, SortKey
from modelbridge.models.events import HealthChanged, ModelDiscovered, PoolRefreshed
from modelbridge.services.discovery import (
    CapabilityProber,
    ModelDiscoveryError,
    ModelPoolManager,
    ModelProbeError,
    ModelSelector,
    build_pool,
    capability_score,
    classify_tier,
)
from modelbridge.services.providers import MockChatModelHandle, MockChatModelProvider


def make_model(model_id: str, max_input_tokens: int = 32000, **overrides) -> ModelCapabilities:
    fields = {
        "id": model_id,
        "name": model_id,
        "max_input_tokens": max_input_tokens,
        "max_output_tokens": 4096,
        "context_window": max_input_tokens,
    }
    fields.update(overrides)
    return ModelCapabilities(**fields)


class UnreadableHandle(MockChatModelHandle):
    """Handle whose id cannot be read."""

    @property
    def id(self) -> str:
        raise RuntimeError("gone")


class TestCapabilityProber:
    """Tests for CapabilityProber."""

    async def test_limits_are_consistent(self) -> None:
        """Output limit never exceeds input and context equals input."""
        prober = CapabilityProber()
        for handle in (
            MockChatModelHandle("gpt-4o", 128000, 16384),
            MockChatModelHandle("tiny", 1000, 50000),
            MockChatModelHandle("no-output-limit", 6000),
        ):
            model = await prober.probe(handle)
            assert model.max_output_tokens <= model.max_input_tokens
            assert model.context_window == model.max_input_tokens

    async def test_output_limit_defaults(self) -> None:
        """Without a reported limit, output is half the input capped at 4096."""
        prober = CapabilityProber()

        small = await prober.probe(MockChatModelHandle("small", 6000))
        large = await prober.probe(MockChatModelHandle("large", 100000))

        assert small.max_output_tokens == 3000
        assert large.max_output_tokens == 4096

    async def test_feature_heuristics(self) -> None:
        """Known families get vision and tools, unknown ones get neither."""
        prober = CapabilityProber()

        gpt4o = await prober.probe(MockChatModelHandle("gpt-4o", 128000))
        gpt35 = await prober.probe(MockChatModelHandle("gpt-3.5-turbo", 16385))
        local = await prober.probe(MockChatModelHandle("local-small", 8192))

        assert gpt4o.supports_vision and gpt4o.supports_tools and gpt4o.supports_multimodal
        assert gpt4o.supported_image_formats == ["jpeg", "jpg", "png", "gif", "webp"]
        assert not gpt35.supports_vision and gpt35.supports_tools
        assert not local.supports_vision and not local.supports_tools
        assert local.supports_streaming

    async def test_probe_keeps_handle_and_identity(self) -> None:
        handle = MockChatModelHandle("gpt-4o", 128000, vendor="acme", family="gpt-4o", version="2024-05")
        model = await CapabilityProber().probe(handle)

        assert model.handle is handle
        assert (model.id, model.vendor, model.family, model.version) == ("gpt-4o", "acme", "gpt-4o", "2024-05")
        assert model.is_healthy
        assert model.success_rate is None

    async def test_unreadable_identity_fails_probe(self) -> None:
        with pytest.raises(ModelProbeError):
            await CapabilityProber().probe(UnreadableHandle("x", 1000))

        unreachable = MockChatModelHandle("gpt-4o", 128000)
        unreachable.reachable = False
        with pytest.raises(ModelProbeError):
            await CapabilityProber().probe(unreachable)


class TestTiering:
    """Tests for tier classification and pool construction."""

    def test_classify_tier(self) -> None:
        assert classify_tier(make_model("a", supports_vision=True, supports_tools=True)) == "primary"
        assert classify_tier(make_model("b", supports_tools=True)) == "secondary"
        assert classify_tier(make_model("c", max_input_tokens=100000)) == "secondary"
        assert classify_tier(make_model("d", max_input_tokens=64000)) == "fallback"
        assert classify_tier(make_model("e", supports_tools=True, is_healthy=False)) == "unhealthy"

    def test_tiers_partition_models(self) -> None:
        """Every model lands in exactly one tier."""
        models = [
            make_model("a", supports_vision=True, supports_tools=True),
            make_model("b", supports_tools=True),
            make_model("c"),
            make_model("d", is_healthy=False),
            make_model("e", max_input_tokens=200000),
        ]
        pool = build_pool(models)

        ids = [model.id for model in pool.all_models()]
        assert sorted(ids) == ["a", "b", "c", "d", "e"]
        assert len(ids) == len(set(ids))
        assert pool.counts() == {"total": 5, "primary": 1, "secondary": 2, "fallback": 1, "unhealthy": 1}

    def test_tiers_sorted_by_score(self) -> None:
        pool = build_pool([
            make_model("small", max_input_tokens=70000),
            make_model("big", max_input_tokens=300000),
            make_model("mid", max_input_tokens=150000),
        ])
        assert [model.id for model in pool.secondary] == ["big", "mid", "small"]

    def test_capability_score(self) -> None:
        model = make_model(
            "a",
            max_input_tokens=128000,
            supports_vision=True,
            supports_tools=True,
            supports_multimodal=True,
        )
        assert capability_score(model) == pytest.approx(128 + 50 + 30 + 20 + 50)

        model.success_rate = 1.0
        assert capability_score(model) == pytest.approx(128 + 50 + 30 + 20 + 100)


class TestModelPoolManager:
    """Tests for discovery, health checks and metrics."""

    async def test_discovery_builds_tiers(self, pool_manager: ModelPoolManager) -> None:
        pool = pool_manager.get_pool()

        assert [model.id for model in pool.primary] == ["claude-3.5-sonnet", "gpt-4o"]
        assert [model.id for model in pool.secondary] == ["gpt-3.5-turbo"]
        assert [model.id for model in pool.fallback] == ["local-small"]
        assert pool.unhealthy == []

    async def test_discovery_publishes_events(self, pool_manager: ModelPoolManager, event_log: list) -> None:
        discovered = [event for event in event_log if isinstance(event, ModelDiscovered)]
        refreshed = [event for event in event_log if isinstance(event, PoolRefreshed)]

        assert len(discovered) == 4
        assert {event.tier for event in discovered} == {"primary", "secondary", "fallback"}
        assert len(refreshed) == 1
        assert refreshed[0].total == 4
        assert event_log.index(refreshed[0]) > event_log.index(discovered[-1])

    async def test_enumeration_failure_keeps_previous_pool(
        self, pool_manager: ModelPoolManager, mock_provider: MockChatModelProvider
    ) -> None:
        previous = pool_manager.get_pool()
        mock_provider.listing_error = RuntimeError("provider offline")

        with pytest.raises(ModelDiscoveryError):
            await pool_manager.discover_all()

        assert pool_manager.get_pool() is previous

    async def test_probe_failure_skips_model(self, mock_provider: MockChatModelProvider) -> None:
        broken = MockChatModelHandle("broken", 1000)
        broken.reachable = False
        mock_provider.add_model(broken)

        manager = ModelPoolManager(mock_provider)
        models = await manager.discover_all()

        assert len(models) == 4
        assert manager.get_model("broken") is None

    async def test_refresh_picks_up_new_models(
        self, pool_manager: ModelPoolManager, mock_provider: MockChatModelProvider
    ) -> None:
        mock_provider.add_model(MockChatModelHandle("gemini-pro", 1000000))
        mock_provider.remove_model("local-small")

        count = await pool_manager.refresh()

        assert count == 4
        assert pool_manager.get_model("gemini-pro") is not None
        assert pool_manager.get_model("local-small") is None

    async def test_health_check_flips_unreachable_model(
        self, pool_manager: ModelPoolManager, mock_provider: MockChatModelProvider, event_log: list
    ) -> None:
        mock_provider.get_model("gpt-4o").reachable = False
        mock_provider.get_model("gpt-3.5-turbo").limit = 0

        await pool_manager.check_health()

        assert not pool_manager.get_model("gpt-4o").is_healthy
        assert not pool_manager.get_model("gpt-3.5-turbo").is_healthy
        assert pool_manager.get_model("claude-3.5-sonnet").is_healthy

        changes = [event for event in event_log if isinstance(event, HealthChanged)]
        assert {event.model_id for event in changes} == {"gpt-4o", "gpt-3.5-turbo"}
        assert all(not event.is_healthy for event in changes)

        # No change, no event
        await pool_manager.check_health()
        assert len([event for event in event_log if isinstance(event, HealthChanged)]) == 2

    async def test_health_check_recovers(
        self, pool_manager: ModelPoolManager, mock_provider: MockChatModelProvider
    ) -> None:
        handle = mock_provider.get_model("gpt-4o")
        handle.reachable = False
        await pool_manager.check_health()
        handle.reachable = True
        await pool_manager.check_health()

        assert pool_manager.get_model("gpt-4o").is_healthy

    async def test_record_request_updates_metrics(self, pool_manager: ModelPoolManager) -> None:
        pool_manager.record_request("gpt-4o", 120.0, success=True)
        pool_manager.record_request("gpt-4o", 80.0, success=False)

        metrics = pool_manager.get_metrics("gpt-4o")
        assert metrics.total_requests == 2
        assert metrics.successful_requests == 1
        assert metrics.failed_requests == 1
        assert metrics.average_response_time == pytest.approx(100.0)

        model = pool_manager.get_model("gpt-4o")
        assert model.success_rate == pytest.approx(0.5)
        assert model.response_time == pytest.approx(80.0)

    async def test_timers_start_and_stop(self, pool_manager: ModelPoolManager) -> None:
        pool_manager.start()
        assert pool_manager.is_running

        pool_manager.update_intervals(refresh_interval=60.0)
        assert pool_manager.is_running
        assert pool_manager.refresh_interval == 60.0

        await pool_manager.stop()
        assert not pool_manager.is_running


class TestModelSelector:
    """Tests for ModelSelector."""

    @pytest.fixture
    def pool(self) -> ModelPool:
        return build_pool([
            make_model("vision-large", 200000, supports_vision=True, supports_tools=True, supports_multimodal=True),
            make_model("vision-small", 32000, supports_vision=True, supports_tools=True, supports_multimodal=True),
            make_model("tools-only", 16000, supports_tools=True),
            make_model("fallback", 8000),
            make_model("sick", 500000, supports_vision=True, supports_tools=True, is_healthy=False),
        ])

    @pytest.fixture
    def selector(self, pool: ModelPool) -> ModelSelector:
        return ModelSelector(lambda: pool)

    def test_selects_highest_score(self, selector: ModelSelector) -> None:
        assert selector.select(DynamicModelCriteria()).id == "vision-large"

    def test_selection_is_deterministic(self, selector: ModelSelector) -> None:
        criteria = DynamicModelCriteria(requires_tools=True)
        assert len({selector.select(criteria).id for _ in range(10)}) == 1

    def test_never_selects_fallback_or_unhealthy(self, selector: ModelSelector) -> None:
        candidates = selector.candidates(DynamicModelCriteria())
        ids = {model.id for model in candidates}

        assert "fallback" not in ids
        assert "sick" not in ids
        assert selector.select(DynamicModelCriteria(preferred_models=["fallback"])).id == "vision-large"

    def test_preferred_model_wins_when_eligible(self, selector: ModelSelector) -> None:
        criteria = DynamicModelCriteria(preferred_models=["tools-only"])
        assert selector.select(criteria).id == "tools-only"

    def test_min_context_filter(self, selector: ModelSelector) -> None:
        criteria = DynamicModelCriteria(min_context_tokens=50000)
        assert [model.id for model in selector.candidates(criteria)] == ["vision-large"]

        assert selector.select(DynamicModelCriteria(min_context_tokens=10_000_000)) is None

    def test_required_capabilities_and_exclusions(self, selector: ModelSelector) -> None:
        criteria = DynamicModelCriteria(required_capabilities=["supports_vision"], exclude_models=["vision-large"])
        assert selector.select(criteria).id == "vision-small"

    def test_sort_by_tokens_and_performance(self, selector: ModelSelector, pool: ModelPool) -> None:
        for model in pool.all_models():
            model.response_time = {"vision-large": 900.0, "vision-small": 100.0, "tools-only": 400.0}.get(model.id)

        by_speed = selector.candidates(DynamicModelCriteria(sort_by=SortKey.PERFORMANCE))
        by_tokens = selector.candidates(DynamicModelCriteria(sort_by=SortKey.TOKENS))

        assert [model.id for model in by_speed] == ["vision-small", "tools-only", "vision-large"]
        assert [model.id for model in by_tokens] == ["vision-large", "vision-small", "tools-only"]

    def test_empty_pool(self) -> None:
        assert ModelSelector(ModelPool).select(DynamicModelCriteria()) is None
