"""
Phase catalog - Scheduling tables injected into the task graph scheduler

Holds the three tables the scheduler needs and nothing else:
- classification: phase name -> priority / complexity / preferred role
- capabilities: phase name -> capabilities a worker should offer
- categories: project category -> ordered phase templates

The defaults below cover the common project categories. Callers supply their
own catalog (dict, JSON file or ORCH_PHASE_CATALOG env var) to override them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import os
from pathlib import Path

from team_orchestrator.models.enums import Complexity

DEFAULT_CATEGORY = "default"


@dataclass(frozen=True)
class TaskClassification:
    """Priority, complexity and preferred role for one phase name."""
    priority: int = 3
    complexity: str = Complexity.MEDIUM.value
    role: str = "developer"

    def __post_init__(self):
        if not 1 <= self.priority <= 5:
            raise ValueError(f"priority must be between 1 and 5, got {self.priority}")
        valid = [c.value for c in Complexity]
        if self.complexity not in valid:
            raise ValueError(f"complexity must be one of {valid}, got {self.complexity}")

    def to_dict(self) -> Dict[str, Any]:
        return {"priority": self.priority, "complexity": self.complexity, "role": self.role}


@dataclass(frozen=True)
class PhaseSpec:
    """
    One phase template of a project category.

    Attributes:
        name: Phase name, also the task type
        description: Human-readable description (defaults to "<name> for <goal>")
        estimated_hours: Effort estimate for the phase
        preferred_role: Overrides the classification role when set
        depends_on: Explicit predecessor phase names; None means "previous phase"
    """
    name: str
    description: Optional[str] = None
    estimated_hours: float = 4.0
    preferred_role: Optional[str] = None
    depends_on: Optional[tuple] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "estimated_hours": self.estimated_hours,
            "preferred_role": self.preferred_role,
            "depends_on": list(self.depends_on) if self.depends_on is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhaseSpec":
        depends_on = data.get("depends_on")
        return cls(
            name=data["name"],
            description=data.get("description"),
            estimated_hours=float(data.get("estimated_hours", 4.0)),
            preferred_role=data.get("preferred_role") or data.get("role"),
            depends_on=tuple(depends_on) if depends_on is not None else None,
        )


DEFAULT_CLASSIFICATION: Dict[str, TaskClassification] = {
    "planning": TaskClassification(5, "high", "leader"),
    "research": TaskClassification(4, "medium", "researcher"),
    "complex_coding": TaskClassification(5, "high", "senior_developer"),
    "implementation": TaskClassification(3, "medium", "developer"),
    "testing": TaskClassification(3, "low", "developer"),
    "documentation": TaskClassification(2, "low", "developer"),
    "deployment": TaskClassification(4, "medium", "senior_developer"),
    "architecture": TaskClassification(5, "high", "leader"),
    "development": TaskClassification(3, "medium", "developer"),
}

DEFAULT_CAPABILITIES: Dict[str, List[str]] = {
    "planning": ["planning", "strategic_thinking", "coordination"],
    "research": ["research", "data_collection", "analysis"],
    "complex_coding": ["complex_coding", "architecture", "debugging"],
    "implementation": ["coding", "programming"],
    "testing": ["testing", "quality_assurance"],
    "documentation": ["documentation", "writing"],
    "deployment": ["deployment", "devops", "system_administration"],
}

GENERAL_CAPABILITIES = ["general"]

DEFAULT_CATEGORIES: Dict[str, List[PhaseSpec]] = {
    DEFAULT_CATEGORY: [
        PhaseSpec("planning"),
        PhaseSpec("research"),
        PhaseSpec("implementation"),
        PhaseSpec("testing"),
        PhaseSpec("deployment"),
    ],
    "web_application": [
        PhaseSpec("requirements_analysis", "Analyze requirements and write the specification", 4, "leader"),
        PhaseSpec("ui_design", "Design the UI and wireframes", 8, "researcher"),
        PhaseSpec("backend_development", "Build the backend API and server logic", 16, "senior_developer",
                  depends_on=("requirements_analysis",)),
        PhaseSpec("frontend_development", "Implement the frontend UI", 12, "developer",
                  depends_on=("ui_design",)),
        PhaseSpec("integration", "Integrate frontend and backend", 6, "senior_developer",
                  depends_on=("backend_development", "frontend_development")),
        PhaseSpec("testing", "Unit, integration and QA testing", 8, "developer"),
        PhaseSpec("deployment", "Production deployment and setup", 4, "senior_developer"),
    ],
    "api_service": [
        PhaseSpec("api_design", "Design the API surface", 6, "leader"),
        PhaseSpec("backend_development", "Build the backend API and server logic", 16, "senior_developer"),
        PhaseSpec("database_design", "Design the database schema", 6, "senior_developer"),
        PhaseSpec("testing", "Unit, integration and QA testing", 8, "developer"),
        PhaseSpec("documentation", "Write API documentation", 4, "developer"),
        PhaseSpec("deployment", "Production deployment and setup", 4, "senior_developer"),
    ],
    "data_analysis": [
        PhaseSpec("data_collection", "Collect data and identify sources", 6, "researcher"),
        PhaseSpec("data_cleaning", "Clean and preprocess data", 8, "researcher"),
        PhaseSpec("analysis", "Analyze data and derive insights", 12, "researcher"),
        PhaseSpec("visualization", "Build charts and dashboards", 6, "developer"),
        PhaseSpec("reporting", "Write the final report", 4, "researcher"),
    ],
}


@dataclass
class SchedulingConfig:
    """
    Explicit scheduling tables for the task graph scheduler.

    Keeps the scoring function pure: everything it needs to know about
    phases comes from this structure, never from inline literals.
    """
    classification: Dict[str, TaskClassification] = field(
        default_factory=lambda: dict(DEFAULT_CLASSIFICATION)
    )
    capabilities: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CAPABILITIES.items()}
    )
    categories: Dict[str, List[PhaseSpec]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORIES.items()}
    )
    fallback_classification: TaskClassification = field(default_factory=TaskClassification)
    role_weight: float = 0.5
    capability_weight: float = 0.3
    load_weight: float = 0.2

    def __post_init__(self):
        if DEFAULT_CATEGORY not in self.categories:
            raise ValueError(f"catalog must define the '{DEFAULT_CATEGORY}' category")
        total = self.role_weight + self.capability_weight + self.load_weight
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"scoring weights must sum to 1.0, got {total}")

    def classify(self, phase_name: str) -> TaskClassification:
        return self.classification.get(phase_name, self.fallback_classification)

    def required_capabilities(self, task_type: str) -> List[str]:
        return list(self.capabilities.get(task_type, GENERAL_CAPABILITIES))

    def phases_for(self, category: Optional[str]) -> List[PhaseSpec]:
        return list(self.categories.get(category or DEFAULT_CATEGORY, self.categories[DEFAULT_CATEGORY]))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchedulingConfig":
        """
        Build a catalog from a JSON-like dict.

        Example:
            SchedulingConfig.from_dict({
                "classification": {"planning": {"priority": 5, "complexity": "high", "role": "leader"}},
                "capabilities": {"planning": ["planning"]},
                "categories": {"default": [{"name": "planning", "estimated_hours": 2}]}
            })

        Sections that are omitted keep their defaults.
        """
        kwargs: Dict[str, Any] = {}
        if "classification" in data:
            kwargs["classification"] = {
                name: TaskClassification(**entry) for name, entry in data["classification"].items()
            }
        if "capabilities" in data:
            kwargs["capabilities"] = {name: list(caps) for name, caps in data["capabilities"].items()}
        if "categories" in data:
            kwargs["categories"] = {
                name: [PhaseSpec.from_dict(p) if isinstance(p, dict) else PhaseSpec(p) for p in phases]
                for name, phases in data["categories"].items()
            }
        for weight in ("role_weight", "capability_weight", "load_weight"):
            if weight in data:
                kwargs[weight] = float(data[weight])
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str) -> "SchedulingConfig":
        with open(Path(path), "r", encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))

    @classmethod
    def from_env(cls, key: str = "ORCH_PHASE_CATALOG") -> "SchedulingConfig":
        """Load from a JSON env var, or a path to a JSON file, falling back to defaults."""
        raw = os.getenv(key)
        if not raw:
            return cls()
        if raw.strip().startswith("{"):
            return cls.from_dict(json.loads(raw))
        return cls.from_file(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "classification": {k: v.to_dict() for k, v in self.classification.items()},
            "capabilities": {k: list(v) for k, v in self.capabilities.items()},
            "categories": {k: [p.to_dict() for p in v] for k, v in self.categories.items()},
            "role_weight": self.role_weight,
            "capability_weight": self.capability_weight,
            "load_weight": self.load_weight,
        }
