from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from realities.memory.schema import PlanDocument  # noqa: E402

DocumentFactory = Callable[..., PlanDocument]


def _phases(durations: Sequence[str], label: str) -> List[Dict[str, Any]]:
    return [
        {
            "phase": f"{label} phase {index + 1}",
            "action": f"{label} action {index + 1}",
            "duration": duration,
            "weeklyHours": 10,
            "milestones": [f"{label} milestone {index + 1}"],
        }
        for index, duration in enumerate(durations)
    ]


@pytest.fixture()
def make_document() -> DocumentFactory:
    """Build a minimal valid reality document with overridable fields."""

    def factory(
        name: str = "Data Science",
        durations: Sequence[str] = ("6 months", "6 months", "6 months"),
        *,
        status: str = "STABLE",
        glitches: Optional[List[Any]] = None,
        sdgs: Optional[List[str]] = None,
        **overrides: Any,
    ) -> PlanDocument:
        payload: Dict[str, Any] = {
            "reality_name": name,
            "timeline_phases": _phases(durations, name),
            "status": status,
            "glitches": glitches or [],
            "sdg_alignment": sdgs if sdgs is not None else ["SDG 4"],
        }
        payload.update(overrides)
        return PlanDocument.model_validate(payload)

    return factory


@pytest.fixture()
def offline_config(tmp_path: Path) -> Path:
    """Write a config file that routes generation to the offline stub."""

    data_dir = tmp_path / "data"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        textwrap.dedent(
            f"""
            paths:
              data: "{data_dir.as_posix()}"
              db_path: "{(data_dir / 'realities.sqlite').as_posix()}"
            models:
              default: gpt-5-offline
            logging:
              level: WARNING
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )
    return config_path
