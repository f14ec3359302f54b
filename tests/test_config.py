"""
Tests for configuration loading and the phase catalog.
"""

import json

import pytest

from team_orchestrator.config import (
    BusConfig,
    EnvConfig,
    OrchestratorConfig,
    PhaseSpec,
    SchedulerConfig,
    SchedulingConfig,
    StateConfig,
    StoreConfig,
    TaskClassification,
)


class TestOrchestratorConfig:

    def test_defaults(self):
        config = OrchestratorConfig()
        assert config.bus.max_retries == 3
        assert config.bus.retry_base_delay == 1.0
        assert config.state.default_strategy == "merge"
        assert config.scheduler.retention_hours == 24.0
        assert config.store.backend == "memory"
        assert config.max_iterations == 200

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ORCH_BUS_MAX_RETRIES", "5")
        monkeypatch.setenv("ORCH_STATE_LOCK_TIMEOUT", "2.5")
        monkeypatch.setenv("ORCH_STORE_BACKEND", "file")
        monkeypatch.setenv("ORCH_MAX_ITERATIONS", "50")
        monkeypatch.setenv("ORCH_LOG_LEVEL", "DEBUG")

        config = OrchestratorConfig.from_env()

        assert config.bus.max_retries == 5
        assert config.state.lock_timeout == 2.5
        assert config.store.backend == "file"
        assert config.max_iterations == 50
        assert config.log_level == "DEBUG"

    def test_from_dict_builds_sections(self):
        config = OrchestratorConfig.from_dict({
            "bus": {"max_retries": 7, "retry_base_delay": 0.5},
            "scheduler": {"retention_hours": 1},
            "log_level": "WARNING",
        })

        assert isinstance(config.bus, BusConfig)
        assert config.bus.max_retries == 7
        assert config.scheduler.retention_hours == 1
        assert isinstance(config.state, StateConfig)

    def test_to_dict_hides_password(self):
        config = OrchestratorConfig(store=StoreConfig(backend="redis", redis_password="secret"))
        assert "redis_password" not in config.to_dict()["store"]
        assert config.to_dict(include_secrets=True)["store"]["redis_password"] == "secret"

    @pytest.mark.parametrize("factory", [
        lambda: OrchestratorConfig(max_iterations=0),
        lambda: OrchestratorConfig(log_level="LOUD"),
        lambda: BusConfig(max_retries=0),
        lambda: BusConfig(retry_base_delay=-1),
        lambda: StateConfig(lock_timeout=0),
        lambda: StateConfig(default_strategy="coin_flip"),
        lambda: SchedulerConfig(retention_hours=0),
    ])
    def test_invalid_values(self, factory):
        with pytest.raises(ValueError):
            factory()


class TestSchedulingConfig:

    def test_default_catalog(self):
        catalog = SchedulingConfig()
        assert [p.name for p in catalog.phases_for(None)] == [
            "planning", "research", "implementation", "testing", "deployment"
        ]
        assert catalog.classify("planning").role == "leader"
        assert catalog.required_capabilities("testing") == ["testing", "quality_assurance"]

    def test_unknown_lookups_fall_back(self):
        catalog = SchedulingConfig()
        assert catalog.classify("interpretive_dance") == TaskClassification()
        assert catalog.required_capabilities("interpretive_dance") == ["general"]
        assert catalog.phases_for("no_such_category") == catalog.phases_for("default")

    def test_from_dict(self):
        catalog = SchedulingConfig.from_dict({
            "classification": {"triage": {"priority": 5, "complexity": "low", "role": "leader"}},
            "capabilities": {"triage": ["triage"]},
            "categories": {
                "default": ["triage"],
                "support": [{"name": "triage", "estimated_hours": 1, "depends_on": []}],
            },
            "role_weight": 0.6,
            "capability_weight": 0.2,
            "load_weight": 0.2,
        })

        assert catalog.classify("triage").priority == 5
        assert catalog.phases_for("support")[0] == PhaseSpec("triage", estimated_hours=1.0, depends_on=())
        assert catalog.role_weight == 0.6

    def test_catalog_requires_default_category(self):
        with pytest.raises(ValueError):
            SchedulingConfig.from_dict({"categories": {"support": ["triage"]}})

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            SchedulingConfig(role_weight=0.9)

    def test_invalid_classification(self):
        with pytest.raises(ValueError):
            TaskClassification(priority=9)
        with pytest.raises(ValueError):
            TaskClassification(complexity="extreme")

    def test_from_env_file(self, tmp_path, monkeypatch):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"capabilities": {"planning": ["roadmaps"]}}), encoding="utf-8")
        monkeypatch.setenv("ORCH_PHASE_CATALOG", str(path))

        assert SchedulingConfig.from_env().required_capabilities("planning") == ["roadmaps"]

    def test_from_env_inline_json(self, monkeypatch):
        monkeypatch.setenv("ORCH_PHASE_CATALOG", '{"load_weight": 0.2}')
        assert SchedulingConfig.from_env().load_weight == 0.2

    def test_to_dict_round_trips(self):
        catalog = SchedulingConfig()
        assert SchedulingConfig.from_dict(catalog.to_dict()).to_dict() == catalog.to_dict()


class TestEnvConfig:

    def test_accessors(self, monkeypatch):
        monkeypatch.setenv("ORCH_FLAG", "yes")
        monkeypatch.setenv("ORCH_COUNT", "12")
        monkeypatch.setenv("ORCH_RATIO", "0.25")
        monkeypatch.setenv("ORCH_LIST", '["a", "b"]')
        monkeypatch.setenv("ORCH_BAD_INT", "twelve")

        assert EnvConfig.get_bool("ORCH_FLAG") is True
        assert EnvConfig.get_int("ORCH_COUNT") == 12
        assert EnvConfig.get_float("ORCH_RATIO") == 0.25
        assert EnvConfig.get_json("ORCH_LIST") == ["a", "b"]
        assert EnvConfig.get_int("ORCH_BAD_INT", 3) == 3
        assert EnvConfig.get("ORCH_UNSET_KEY", "fallback") == "fallback"

    def test_check_required(self, monkeypatch):
        monkeypatch.setenv("ORCH_PRESENT", "1")
        monkeypatch.delenv("ORCH_ABSENT", raising=False)
        assert EnvConfig.check_required("ORCH_PRESENT", "ORCH_ABSENT") == {
            "ORCH_PRESENT": True, "ORCH_ABSENT": False
        }

    def test_load_env_file_does_not_override(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("ORCH_FROM_FILE=file\nORCH_ALREADY_SET=file\n", encoding="utf-8")
        monkeypatch.delenv("ORCH_FROM_FILE", raising=False)
        monkeypatch.setenv("ORCH_ALREADY_SET", "process")

        assert EnvConfig.load_env_file(str(env_file)) is True
        assert EnvConfig.get("ORCH_FROM_FILE") == "file"
        assert EnvConfig.get("ORCH_ALREADY_SET") == "process"
        monkeypatch.delenv("ORCH_FROM_FILE", raising=False)

    def test_find_env_file_searches_parents(self, tmp_path):
        (tmp_path / ".env").write_text("", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert EnvConfig.find_env_file(nested) == (tmp_path / ".env").resolve()

    def test_missing_file(self, tmp_path):
        assert EnvConfig.load_env_file(str(tmp_path / "missing.env")) is False
