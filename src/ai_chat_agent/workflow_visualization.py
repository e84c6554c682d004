"""Turn workflow definition and diagram export using Microsoft Agent Framework."""

import argparse
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional, Sequence, Tuple

import graphviz
from agent_framework import (
    Executor,
    Workflow,
    WorkflowBuilder,
    WorkflowContext,
    WorkflowViz,
    handler,
)

logger = logging.getLogger(__name__)

DiagramFormat = Literal["svg", "png", "pdf", "dot"]
DIAGRAM_FORMATS: Tuple[str, ...] = ("svg", "png", "pdf", "dot")

DEFAULT_OUTPUT_DIR = Path("outputs") / "workflow"

TURN_STEPS = (
    ("receive", "Append user message to the transcript"),
    ("triage", "Summarize long input (temperature 0)"),
    ("route", "Route: story request or regular chat"),
    ("planner", "Planner model drafts a JSON story plan"),
    ("writer", "Writer model expands the plan into a story"),
    ("regular_chat", "Track interview state and call the selected model"),
    ("parse", "Decode the structured reply envelope"),
    ("append", "Append assistant records to the transcript"),
)

STORY_BRANCH = ("route", "planner", "writer", "append")
CHAT_BRANCH = ("route", "regular_chat", "parse", "append")


@dataclass(slots=True)
class TurnDiagram:
    """Files written for one rendering of the turn workflow."""

    dot_path: Path
    mermaid_path: Path
    image_path: Optional[Path]
    dot_source: str

    def describe(self) -> list[str]:
        lines = [
            f"Workflow DOT written to: {self.dot_path}",
            f"Workflow Mermaid definition written to: {self.mermaid_path}",
        ]
        if self.image_path is None:
            lines.append("Image export skipped because --format dot was selected.")
        else:
            lines.append(f"Workflow image exported to: {self.image_path}")
        return lines


class WorkflowVisualizationError(RuntimeError):
    """Raised when the workflow diagram cannot be rendered."""


class _TurnStepExecutor(Executor):
    """Placeholder step; only the graph shape matters for visualization."""

    def __init__(self, executor_id: str, label: str) -> None:
        super().__init__(id=executor_id)
        self.label = label

    @handler
    async def handle(self, message: str, ctx: WorkflowContext[str]) -> None:
        _ = message
        await ctx.send_message(self.label)


def build_turn_workflow() -> Workflow:
    """Construct the workflow graph of a single conversation turn."""

    steps = {
        step_id: _TurnStepExecutor(step_id, label)
        for step_id, label in TURN_STEPS
    }
    builder = WorkflowBuilder(
        name="AI Chat Turn Workflow",
        description=(
            "One user turn: optional summarization, then either the "
            "planner/writer story pipeline or a regular structured chat call."
        ),
    )
    builder.set_start_executor(steps["receive"])
    builder.add_chain([steps["receive"], steps["triage"], steps["route"]])
    for branch in (STORY_BRANCH, CHAT_BRANCH):
        builder.add_chain([steps[step_id] for step_id in branch])
    workflow = builder.build()
    workflow.id = "ai-chat-turn-workflow"
    return workflow


def render_turn_diagram(
    output_dir: Path,
    image_format: DiagramFormat = "svg",
) -> TurnDiagram:
    """Write DOT and Mermaid sources of the turn workflow, plus an image.

    The image is produced by python-graphviz from the DOT source and needs
    the Graphviz ``dot`` executable; ``image_format="dot"`` skips it.
    """

    if image_format not in DIAGRAM_FORMATS:
        raise WorkflowVisualizationError(f"Unsupported diagram format: {image_format}")
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    stem = f"chat_turn_workflow_{datetime.now(timezone.utc):%Y%m%d_%H%M%S}"

    viz = WorkflowViz(build_turn_workflow())
    dot_source = viz.to_digraph()
    dot_path = output_dir / f"{stem}.dot"
    dot_path.write_text(dot_source, encoding="utf-8")
    mermaid_path = output_dir / f"{stem}.mmd"
    mermaid_path.write_text(viz.to_mermaid(), encoding="utf-8")

    image_path = None
    if image_format != "dot":
        image_path = _render_image(dot_source, output_dir, stem, image_format)
    logger.info("Turn workflow diagram written to %s", output_dir)
    return TurnDiagram(
        dot_path=dot_path,
        mermaid_path=mermaid_path,
        image_path=image_path,
        dot_source=dot_source,
    )


def _render_image(
    dot_source: str,
    output_dir: Path,
    stem: str,
    image_format: str,
) -> Path:
    source = graphviz.Source(dot_source)
    try:
        rendered = source.render(
            filename=stem,
            directory=str(output_dir),
            format=image_format,
            cleanup=True,
        )
    except graphviz.ExecutableNotFound as exc:
        raise WorkflowVisualizationError(
            "Graphviz 'dot' executable not found on PATH; "
            "use --format dot to export sources only."
        ) from exc
    except graphviz.CalledProcessError as exc:
        raise WorkflowVisualizationError(f"Graphviz failed: {exc}") from exc
    return Path(rendered)


def run_workflow_visualization_cli(argv: Sequence[str]) -> None:
    """``ai-chat-agent workflow-viz``: render the turn workflow diagram."""

    parser = argparse.ArgumentParser(
        prog="ai-chat-agent workflow-viz",
        description="Render the chat turn workflow diagram.",
    )
    parser.add_argument(
        "--format",
        choices=DIAGRAM_FORMATS,
        default="svg",
        help="Output format for the rendered image (default: svg).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        help=f"Directory for workflow visualization files (default: {DEFAULT_OUTPUT_DIR}).",
    )
    args = parser.parse_args(list(argv))

    try:
        diagram = render_turn_diagram(args.output_dir, args.format)
    except WorkflowVisualizationError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc
    for line in diagram.describe():
        print(line)  # noqa: T201
