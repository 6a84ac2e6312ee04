"""CLI commands for generating, forking, comparing and merging career realities."""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from .generation import generate_reality
from .memory.backends import PersistenceError
from .memory.schema import Profile, SavedArtifact, TargetRole, TechnicalSkill
from .memory.store import CorruptLineage, RealityNode, RealityStore, StoreEvent
from .merge import compare_realities, merge_realities
from .merge.conflicts import Conflict, ConflictResolution
from .models import LLMClient, LLMClientError, ResponsesClient

APP_HELP = "Career reality generator: fork, compare and merge career plans."
DEFAULT_CONFIG_NAME = "config.yaml"
LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "paths": {
        "data": "data",
        "db_path": "data/realities.sqlite",
    },
    "storage": {
        "capacity_bytes": 5 * 1024 * 1024,
    },
    "models": {
        "default": "gpt-5-mini",
        "timeout": 120,
        "max_attempts": 3,
        "retry_delay": 0.5,
    },
    "generation": {
        "temperature": 0.7,
    },
    "merge": {
        "apply_choices": False,
    },
    "logging": {
        "level": "WARNING",
    },
}

_COMPARE_PATTERN = re.compile(r"\b(vs\.?|versus|compare|comparing|merge|merging)\b", re.IGNORECASE)


def _copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _merge_defaults(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration, filling unspecified sections from the defaults."""
    if not config_path.exists():
        return _copy_config_template()

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return _merge_defaults(_copy_config_template(), data)


def _configure_logging(config: Dict[str, Any]) -> None:
    level_name = str((config.get("logging") or {}).get("level", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _log_event(event: StoreEvent) -> None:
    LOGGER.info("Store changed: %s %s", event.kind, event.artifact_id or "")


def _open_store(config_path: Path) -> tuple[Dict[str, Any], RealityStore]:
    config_data = load_config(config_path)
    _configure_logging(config_data)
    return config_data, RealityStore.from_config(config_data, notify=_log_event)


def _build_client(config: Dict[str, Any], *, use_remote: bool) -> LLMClient:
    """Select either the Responses API client or the offline stub."""
    models_cfg = config.get("models") or {}
    model_name = str(models_cfg.get("default", "gpt-5-mini"))
    model_name_key = model_name.lower()
    offline_model = model_name_key == "offline" or model_name_key.endswith("-offline")

    if use_remote and not offline_model:
        client_kwargs: Dict[str, Any] = {}
        timeout_value = models_cfg.get("timeout")
        if isinstance(timeout_value, (int, float)) and timeout_value > 0:
            client_kwargs["timeout"] = float(timeout_value)
        max_attempts_value = models_cfg.get("max_attempts")
        if isinstance(max_attempts_value, int) and max_attempts_value > 0:
            client_kwargs["max_attempts"] = max_attempts_value
        retry_delay_value = models_cfg.get("retry_delay")
        if isinstance(retry_delay_value, (int, float)) and retry_delay_value >= 0:
            client_kwargs["retry_delay"] = float(retry_delay_value)
        base_url_value = models_cfg.get("base_url")
        if isinstance(base_url_value, str) and base_url_value.strip():
            client_kwargs["base_url"] = base_url_value.strip()
        api_key_value = models_cfg.get("api_key")
        if isinstance(api_key_value, str) and api_key_value.strip():
            client_kwargs["api_key"] = api_key_value.strip()
        try:
            return ResponsesClient(model=model_name, **client_kwargs)
        except ValueError as error:
            if "api key" in str(error).lower():
                typer.echo(
                    "No API key given. Set OPENAI_API_KEY or REALITIES_API_KEY, "
                    "or re-run with --no-use-remote to use the offline stub."
                )
            else:
                typer.echo(f"Failed to initialise model client: {error}")
            raise typer.Exit(code=1)

    typer.echo("Using offline stub client.")
    return _OfflineLLMClient()


class _OfflineLLMClient(LLMClient):
    """Local stub that synthesizes deterministic realities for demos/tests."""

    def __init__(self) -> None:
        super().__init__("offline", max_attempts=1)

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        metadata = payload.get("metadata") or {}
        request_data = metadata.get("request") or {}
        if isinstance(request_data, str):
            try:
                request_data = json.loads(request_data)
            except json.JSONDecodeError:
                request_data = {}
        prompt = str(request_data.get("prompt") or "career path")
        return json.dumps(self._build_reality(prompt))

    @staticmethod
    def _build_reality(prompt: str) -> Dict[str, Any]:
        words = re.findall(r"[A-Za-z0-9]+", prompt)[:5]
        name = " ".join(word.capitalize() for word in words) or "Career Path"
        comparing = bool(_COMPARE_PATTERN.search(prompt))
        glitches: List[Dict[str, Any]] = []
        if comparing:
            glitches = [
                {"type": "Time", "description": "Both paths compete for the same hours", "severity": "High"},
                {"type": "Resource", "description": "Financial constraint across both paths", "severity": "Medium"},
            ]
        return {
            "reality_name": name,
            "sdg_alignment": ["SDG 4", "SDG 8"],
            "timeline_phases": [
                {
                    "phase": "Foundation",
                    "action": f"Build fundamentals for {name}",
                    "duration": "6 months",
                    "weeklyHours": 10,
                    "milestones": ["Core skills baseline"],
                    "dependencies": [],
                },
                {
                    "phase": "Build",
                    "action": "Ship two portfolio projects",
                    "duration": "12 months",
                    "weeklyHours": 12,
                    "milestones": ["Portfolio published"],
                    "dependencies": ["Foundation"],
                },
                {
                    "phase": "Establish",
                    "action": "Apply, interview and land the first role",
                    "duration": "6 months",
                    "weeklyHours": 15,
                    "milestones": ["Offer accepted"],
                    "dependencies": ["Build"],
                },
            ],
            "glitches": glitches,
            "status": "BREACH_DETECTED" if comparing else "STABLE",
        }


def _resolve_reality(store: RealityStore, reality_id: str) -> SavedArtifact:
    artifact = store.get_by_id(reality_id)
    if artifact is None:
        typer.echo(f"Unknown reality: {reality_id}")
        raise typer.Exit(code=1)
    return artifact


def _parse_resolution(raw: str) -> ConflictResolution:
    """Parse ``INDEX=CHOICE`` or ``CONFLICT_ID=CHOICE``."""
    reference, sep, choice = raw.partition("=")
    choice_key = choice.strip().lower()
    normalised = {"a": "A", "b": "B", "suggested": "suggested"}.get(choice_key)
    if not sep or normalised is None:
        raise typer.BadParameter(
            f"Expected INDEX=A|B|suggested, got '{raw}'.", param_hint="--resolve"
        )
    reference = reference.strip()
    if reference.isdigit():
        return ConflictResolution(conflict_index=int(reference), selected_option=normalised)
    return ConflictResolution(conflict_id=reference, selected_option=normalised)


def _render_conflict(index: int, conflict: Conflict) -> None:
    flag = "auto" if conflict.auto_resolvable else "needs decision"
    if conflict.resolved:
        flag = f"resolved: {conflict.choice}"
    typer.echo(f"[{index}] {conflict.type.value.upper()} {conflict.conflict_id} ({flag})")
    typer.echo(f"    {conflict.description}")
    typer.echo(f"    A: {conflict.option_a.render()}")
    typer.echo(f"    B: {conflict.option_b.render()}")
    if conflict.suggested is not None:
        typer.echo(f"    suggested: {conflict.suggested.render()}")


def _render_tree(nodes: List[RealityNode], active_id: Optional[str], depth: int = 0) -> None:
    for node in nodes:
        marker = "*" if node.artifact.id == active_id else "-"
        status = node.artifact.data.status.value
        typer.echo(f"{'  ' * depth}{marker} {node.artifact.name} [{status}] ({node.artifact.id})")
        _render_tree(node.children, active_id, depth + 1)


app = typer.Typer(help=APP_HELP)

ConfigOption = typer.Option(
    DEFAULT_CONFIG_NAME,
    "--config",
    "-c",
    help="Path to the configuration file.",
)


@app.command()
def init(config: str = ConfigOption) -> None:
    """Write a default configuration file if none exists."""
    config_path = Path(config)
    if config_path.exists():
        typer.echo(f"Configuration already exists at {config_path}.")
        return
    _write_config(config_path, _copy_config_template())
    typer.echo(f"Created configuration at {config_path}.")


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="What reality to simulate."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name for the saved reality."),
    parent: Optional[str] = typer.Option(None, "--parent", "-p", help="Fork from this reality id."),
    save: bool = typer.Option(True, "--save/--no-save", help="Persist the generated reality."),
    use_remote: bool = typer.Option(
        True,
        "--use-remote/--no-use-remote",
        help="Call the model API instead of the offline stub (requires API key).",
    ),
    config: str = ConfigOption,
) -> None:
    """Generate a reality from a prompt and optionally save it."""
    config_data, store = _open_store(Path(config))
    with store:
        if parent:
            _resolve_reality(store, parent)
        client = _build_client(config_data, use_remote=use_remote)
        active_profile = store.get_profile()
        temperature = float((config_data.get("generation") or {}).get("temperature", 0.7))
        try:
            result = generate_reality(client, prompt, active_profile, temperature=temperature)
        except LLMClientError as error:
            typer.echo(f"Generation failed: {error}")
            raise typer.Exit(code=1) from error

        if not result.is_structured:
            typer.echo(f"Model output could not be read as a reality ({result.error}). Raw output:")
            typer.echo(result.raw_text)
            return

        document = result.document
        typer.echo(f"Generated '{document.name}' [{document.status.value}]")
        for phase in document.timeline_phases:
            typer.echo(f"- {phase.phase}: {phase.action} ({phase.duration})")
        if not save:
            return
        try:
            artifact = store.save(name or document.name, document, active_profile, prompt, parent_id=parent)
        except (PersistenceError, CorruptLineage) as error:
            typer.echo(f"Failed to save reality: {error}")
            raise typer.Exit(code=1) from error
        typer.echo(f"Saved reality {artifact.id}")


@app.command("list")
def list_realities(config: str = ConfigOption) -> None:
    """List saved realities in creation order."""
    _, store = _open_store(Path(config))
    with store:
        artifacts = store.get_all()
        active_id = store.get_active_id()
    if not artifacts:
        typer.echo("No saved realities.")
        return
    for artifact in artifacts:
        marker = "*" if artifact.id == active_id else "-"
        parent = f" <- {artifact.parent_id}" if artifact.parent_id else ""
        typer.echo(f"{marker} {artifact.id} {artifact.name} [{artifact.data.status.value}]{parent}")


@app.command()
def show(reality_id: str = typer.Argument(...), config: str = ConfigOption) -> None:
    """Print a saved reality as JSON."""
    _, store = _open_store(Path(config))
    with store:
        artifact = _resolve_reality(store, reality_id)
    typer.echo(json.dumps(artifact.model_dump(mode="json", by_alias=True), indent=2))


@app.command()
def tree(config: str = ConfigOption) -> None:
    """Show the fork forest."""
    _, store = _open_store(Path(config))
    with store:
        nodes = store.build_tree()
        active_id = store.get_active_id()
    if not nodes:
        typer.echo("No saved realities.")
        return
    _render_tree(nodes, active_id)


@app.command()
def lineage(reality_id: str = typer.Argument(...), config: str = ConfigOption) -> None:
    """Show the ancestry chain from the root to a reality."""
    _, store = _open_store(Path(config))
    with store:
        _resolve_reality(store, reality_id)
        try:
            chain = store.get_ancestry_chain(reality_id)
        except CorruptLineage as error:
            typer.echo(f"Corrupt lineage: {error}")
            raise typer.Exit(code=1) from error
    typer.echo(" -> ".join(artifact.name for artifact in chain))


@app.command()
def compare(
    reality_a: str = typer.Argument(...),
    reality_b: str = typer.Argument(...),
    config: str = ConfigOption,
) -> None:
    """Compare SDGs, risks and durations of two realities."""
    _, store = _open_store(Path(config))
    with store:
        artifact_a = _resolve_reality(store, reality_a)
        artifact_b = _resolve_reality(store, reality_b)
    comparison = compare_realities(artifact_a, artifact_b)
    typer.echo(f"Duration: {comparison.total_duration_a} vs {comparison.total_duration_b} months")
    typer.echo(f"Common SDGs: {', '.join(comparison.sdgs.common) or 'none'}")
    typer.echo(f"Only in {artifact_a.name}: {', '.join(comparison.sdgs.unique_a) or 'none'}")
    typer.echo(f"Only in {artifact_b.name}: {', '.join(comparison.sdgs.unique_b) or 'none'}")
    typer.echo(f"Shared risks: {len(comparison.glitches.common)}")
    for label, glitches in (
        (artifact_a.name, comparison.glitches.unique_a),
        (artifact_b.name, comparison.glitches.unique_b),
    ):
        typer.echo(f"Risks only in {label}: {len(glitches)}")
        for glitch in glitches:
            typer.echo(f"  - [{glitch.severity}] {glitch.description}")


@app.command()
def merge(
    reality_a: str = typer.Argument(...),
    reality_b: str = typer.Argument(...),
    resolve: List[str] = typer.Option(
        None,
        "--resolve",
        "-r",
        help="Resolution as INDEX=A|B|suggested or CONFLICT_ID=A|B|suggested (repeatable).",
    ),
    apply_choices: Optional[bool] = typer.Option(
        None,
        "--apply-choices/--no-apply-choices",
        help="Let resolutions select field values (defaults to merge.apply_choices).",
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name for the merged reality."),
    save: bool = typer.Option(True, "--save/--no-save", help="Persist the merged reality."),
    config: str = ConfigOption,
) -> None:
    """Merge two realities, reporting conflicts that still need a decision."""
    resolutions = [_parse_resolution(item) for item in resolve or []]
    config_data, store = _open_store(Path(config))
    if apply_choices is None:
        apply_choices = bool((config_data.get("merge") or {}).get("apply_choices", False))

    with store:
        artifact_a = _resolve_reality(store, reality_a)
        artifact_b = _resolve_reality(store, reality_b)
        result = merge_realities(artifact_a, artifact_b, resolutions, apply_choices=apply_choices)

        typer.echo(
            f"{len(result.conflicts)} conflict(s) detected, {result.auto_resolved} auto-resolvable"
        )
        for index, conflict in enumerate(result.conflicts):
            _render_conflict(index, conflict)
        typer.echo(f"Merged '{result.merged.name}' [{result.merged.status.value}]")

        if not save:
            return
        if result.pending:
            typer.echo("Resolve pending conflicts with --resolve before saving.")
            raise typer.Exit(code=1)
        try:
            artifact = store.save(
                name or result.merged.name,
                result.merged,
                store.get_profile(),
                f"Merge of {artifact_a.name} and {artifact_b.name}",
                parent_id=artifact_a.id,
            )
        except (PersistenceError, CorruptLineage) as error:
            typer.echo(f"Failed to save merged reality: {error}")
            raise typer.Exit(code=1) from error
        typer.echo(f"Saved merged reality {artifact.id}")


@app.command()
def delete(reality_id: str = typer.Argument(...), config: str = ConfigOption) -> None:
    """Delete a saved reality. Forks of it are kept."""
    _, store = _open_store(Path(config))
    with store:
        store.delete(reality_id)
    typer.echo(f"Deleted {reality_id}")


@app.command()
def profile(
    name: Optional[str] = typer.Option(None, "--name"),
    email: Optional[str] = typer.Option(None, "--email"),
    degree: Optional[str] = typer.Option(None, "--degree"),
    major: Optional[str] = typer.Option(None, "--major"),
    university: Optional[str] = typer.Option(None, "--university"),
    skill: List[str] = typer.Option(None, "--skill", help="Technical skill (repeatable)."),
    target_role: List[str] = typer.Option(None, "--target-role", help="Target role (repeatable)."),
    from_file: Optional[Path] = typer.Option(None, "--from-file", help="Replace the profile from a JSON file."),
    config: str = ConfigOption,
) -> None:
    """Show or update the active profile."""
    _, store = _open_store(Path(config))
    with store:
        if from_file is not None:
            current = Profile.model_validate_json(from_file.read_text(encoding="utf-8"))
        else:
            current = store.get_profile()
        updates: Dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if email is not None:
            updates["email"] = email
        education_updates = {
            key: value
            for key, value in (("degree", degree), ("major", major), ("university", university))
            if value is not None
        }
        if education_updates:
            updates["education"] = current.education.model_copy(update=education_updates)
        if skill:
            updates["skills"] = current.skills.model_copy(
                update={"technical": [*current.skills.technical, *(TechnicalSkill(name=s) for s in skill)]}
            )
        if target_role:
            updates["target_roles"] = [*current.target_roles, *(TargetRole(role=r) for r in target_role)]

        if updates or from_file is not None:
            current = current.model_copy(update=updates)
            store.save_profile(current)
            typer.echo("Profile saved.")
    typer.echo(json.dumps(current.model_dump(mode="json", by_alias=True), indent=2))


@app.command()
def status(config: str = ConfigOption) -> None:
    """Report store location, counts and capacity usage."""
    config_path = Path(config)
    _, store = _open_store(config_path)
    with store:
        artifacts = store.get_all()
        active = store.get_active()
        info = store.storage_info()
        db_path = getattr(store.backend, "db_path", None)

    typer.echo(f"Configuration: {config_path}{'' if config_path.exists() else ' (defaults)'}")
    if db_path is not None:
        typer.echo(f"Database: {db_path}")
    typer.echo(f"Realities: {len(artifacts)} ({sum(1 for a in artifacts if not a.parent_id)} roots)")
    typer.echo(f"Active: {active.name + ' (' + active.id + ')' if active else 'none'}")
    typer.echo(f"Storage: {info.used} / {info.total} bytes ({info.percentage:.1f}%)")


if __name__ == "__main__":
    app()
