#!/usr/bin/env python3
"""Script for filling in a flow from the terminal.

This script runs a flow section by section, saving progress in the background
while waiting for input. At any prompt enter ``:back``, ``:skip`` or ``:quit``.
Choice questions accept an option number or value; multi-value questions take
a comma separated list.

Example usage:
    python scripts/run_flow.py --type onboarding --user alice
"""
import argparse
import asyncio
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

from survey_assist_utils.logging import get_logger

sys.path.append(str(Path(__file__).resolve().parent.parent))

# pylint: disable=wrong-import-position
from models.flow import ChoiceQuestion, Flow, Section, SliderQuestion
from models.progress import TransitionResult, TransitionStatus, progress_key
from utils.api_utils import APIClient, HttpRecordStore
from utils.app_utils import read_flow_definitions, seed_flows
from utils.autosave_utils import PROGRESS_AUTOSAVE_INTERVAL, AutosaveController
from utils.conditional_utils import should_show_question
from utils.navigation_utils import FlowNavigator
from utils.repository_utils import (
    InMemoryRecordStore,
    ResponseProgressStore,
    ResponseRepository,
    TemplateRepository,
)
from utils.template_utils import ensure_default_template
from utils.validation_utils import validate_flow

logger = get_logger(__name__, level="INFO")

DEFAULT_DEFINITIONS = (
    Path(__file__).resolve().parent.parent
    / "flow_builder_ui"
    / "flows"
    / "default_flows.json"
)

BACK = ":back"
SKIP = ":skip"
QUIT = ":quit"
COMMANDS = (BACK, SKIP, QUIT)

PROMPT = "> "


def _option_value(question: ChoiceQuestion, token: str) -> str:
    """Maps a 1-based option number to its value; other input is kept as typed."""
    if token.isdigit() and 1 <= int(token) <= len(question.options):
        return question.options[int(token) - 1].value
    return token


def parse_value(question: Any, raw: str) -> Any:
    """Converts typed input into an answer value for the question type.

    Args:
        question: The question being answered.
        raw (str): The line typed by the user.

    Returns:
        The answer value: a number for sliders, a list for multi-value
        questions, otherwise the trimmed text.
    """
    text = raw.strip()
    if isinstance(question, SliderQuestion):
        try:
            number = float(text)
        except ValueError:
            return text
        return int(number) if number.is_integer() else number
    if isinstance(question, ChoiceQuestion):
        if question.is_multi_value:
            return [
                _option_value(question, item.strip())
                for item in text.split(",")
                if item.strip()
            ]
        return _option_value(question, text)
    return text


def describe_question(question: Any) -> str:
    """Formats a question with its options and rules for the terminal."""
    lines = [question.text + (" *" if question.validation.required else "")]
    if question.description:
        lines.append(f"  {question.description}")
    if isinstance(question, ChoiceQuestion):
        for number, option in enumerate(question.options, start=1):
            lines.append(f"  {number}) {option.text}")
        if question.type == "ranking":
            lines.append("  Rank every option, most preferred first, comma separated")
        elif question.is_multi_value:
            lines.append("  Choose one or more, comma separated")
    if isinstance(question, SliderQuestion):
        rules = question.validation
        low = "" if rules.min_value is None else f"{rules.min_value:g}"
        high = "" if rules.max_value is None else f"{rules.max_value:g}"
        lines.append(f"  Range: {low}..{high}")
    return "\n".join(lines)


def _report(result: TransitionResult, write: Callable[[str], Any]) -> None:
    if result.status == TransitionStatus.BLOCKED:
        write("Please fix the following before continuing:")
        for key, message in result.errors.items():
            write(f"  - {key}: {message}")
    elif result.status == TransitionStatus.IGNORED:
        write(f"Not possible: {result.reason}")


async def _fill_section(
    navigator: FlowNavigator,
    section: Section,
    read_line: Callable[[str], str],
    write: Callable[[str], Any],
) -> Optional[str]:
    """Prompts for each visible question; returns a command if one is entered.

    Visibility is re-evaluated after every answer. An empty line keeps an
    existing answer.
    """
    for question in section.questions:
        if not should_show_question(question, navigator.answers):
            continue
        write(describe_question(question))
        raw = await asyncio.to_thread(read_line, PROMPT)
        if raw.strip() in COMMANDS:
            return raw.strip()
        if not raw.strip() and question.id in navigator.answers:
            continue
        result = navigator.answer(question.id, parse_value(question, raw))
        for message in result.errors.values():
            write(f"  ! {message}")
    return None


async def run_flow(
    navigator: FlowNavigator,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], Any] = print,
) -> bool:
    """Runs the interactive loop until the flow completes or the user quits.

    Args:
        navigator (FlowNavigator): Navigator for the flow being filled in.
        read_line (Callable[[str], str]): Reads a line of input.
        write (Callable[[str], Any]): Writes a line of output.

    Returns:
        bool: True if the flow was completed.
    """
    while not navigator.is_completed:
        section = navigator.current_section
        if section is None:
            write("This flow has no sections.")
            return False

        stats = navigator.stats()
        write(
            f"\n== {section.title} "
            f"({navigator.section_index + 1}/{len(navigator.sections)}) "
            f"- {stats.percentage:g}% complete, {navigator.save_status.value} =="
        )

        command = await _fill_section(navigator, section, read_line, write)
        if command == QUIT:
            return False
        if command == BACK:
            result = navigator.back()
        elif command == SKIP:
            result = await navigator.skip_section(section.id)
        else:
            result = await navigator.next()
        _report(result, write)

    write(navigator.flow.settings.completion_message)
    return True


async def _select_flow(templates: TemplateRepository, args: argparse.Namespace) -> Flow:
    if args.flow_id:
        return await templates.load_flow(args.flow_id)
    template = await ensure_default_template(templates, args.type)
    return validate_flow(template.content)


async def run(args: argparse.Namespace) -> bool:
    """Sets up storage, loads the flow and runs it with periodic autosave."""
    if args.store_url:
        store: Any = HttpRecordStore(
            APIClient(args.store_url, os.getenv("RECORD_STORE_TOKEN", ""), logger)
        )
    else:
        store = InMemoryRecordStore()
    templates = TemplateRepository(store)
    responses = ResponseRepository(store)

    await seed_flows(templates, read_flow_definitions(args.definitions))
    flow = await _select_flow(templates, args)
    save_progress = flow.settings.allow_save_progress

    controller = AutosaveController(
        ResponseProgressStore(responses),
        snapshot_fn=lambda: navigator.snapshot(),  # pylint: disable=unnecessary-lambda
        key=progress_key(args.user, flow.id),
        interval=args.interval,
    )
    snapshot = None
    if save_progress and not args.restart:
        snapshot = await controller.load()
    if snapshot is not None and snapshot.metadata.completed_at is None:
        print(f"Resuming '{flow.title}' where you left off.")
        navigator = FlowNavigator.from_snapshot(flow, snapshot, controller)
    else:
        navigator = FlowNavigator(flow, args.user, controller)

    print(f"{flow.title}\n{flow.description}")
    if save_progress:
        controller.start()
    try:
        completed = await run_flow(navigator)
        if not completed and save_progress and controller.pending:
            await controller.flush()
    finally:
        await controller.stop()

    stats = navigator.stats()
    print(
        f"{stats.completed_questions}/{stats.total_questions} questions answered "
        f"({stats.percentage:g}%), save status: {navigator.save_status.value}"
    )
    if controller.last_error:
        print(f"Last save error: {controller.last_error}")
    return completed


def main() -> None:
    """Main entry point for filling in a flow from the command line."""
    parser = argparse.ArgumentParser(description="Fill in a flow in the terminal.")
    parser.add_argument(
        "--type",
        choices=["onboarding", "questionnaire"],
        default="onboarding",
        help="Run the default flow of this type",
    )
    parser.add_argument("--flow-id", help="Run this flow instead of the default")
    parser.add_argument("--user", default="cli-user", help="Respondent id")
    parser.add_argument(
        "--definitions",
        default=os.getenv("FLOW_DEFINITIONS", str(DEFAULT_DEFINITIONS)),
        help="Seed flow definitions JSON",
    )
    parser.add_argument(
        "--store-url",
        default=os.getenv("RECORD_STORE_URL", ""),
        help="Record store base URL (in-memory when empty)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=PROGRESS_AUTOSAVE_INTERVAL,
        help="Autosave interval in seconds",
    )
    parser.add_argument(
        "--restart", action="store_true", help="Ignore saved progress and start over"
    )
    args = parser.parse_args()

    try:
        completed = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
    sys.exit(0 if completed else 1)


if __name__ == "__main__":
    main()
