"""
cli.py – Command-line front end for the Preop Guide

Run:
    preop-guide survey                 answer the background survey
    preop-guide status                 profile, completion and sections
    preop-guide test alcohol           take a screening test (alcohol|smoking|substance)
    preop-guide document exercise-plan write a PDF guide or test report
    preop-guide visit nutrition        mark a section as visited
    preop-guide read other_diseases diabetes   toggle a sub-topic as read
    preop-guide done movement          mark a section's task as done
    preop-guide show-all on|off        personalised or full content view
    preop-guide history [alcohol]      screening-test history
    preop-guide reset [--all]          clear profile (or everything)
    preop-guide export [file]          JSON backup
    preop-guide import <file>          restore a JSON backup

Settings come from the environment / .env (see .env.example).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from preop_guide import __version__
from preop_guide.config import Settings, get_settings
from preop_guide.models import SECTION_IDS, SURVEY_QUESTIONS, DocumentKind, Relevance, SurveyQuestion
from preop_guide.profile import (
    age_group_display,
    health_condition_display,
    lifestyle_display,
    risk_factors,
)
from preop_guide.progress import progress_message
from preop_guide.screening import INSTRUMENTS, classify
from preop_guide.session import GuideSession

console = Console()
logger = logging.getLogger(__name__)

RELEVANCE_STYLE = {
    Relevance.HIGH:           "bold red",
    Relevance.NORMAL:         "white",
    Relevance.NOT_APPLICABLE: "dim",
    Relevance.ALL:            "cyan",
}


# ─── Display helpers ─────────────────────────────────────────────────────────

def _bar(pct: int, width: int = 20) -> str:
    filled = round(pct / 100 * width)
    return "[" + "█" * filled + "░" * (width - filled) + f"] {pct}%"


def _fail(message: Optional[str]) -> int:
    console.print(f"[bold red]✗[/bold red] {message or 'Toiminto epäonnistui'}")
    return 1


def show_status(session: GuideSession, settings: Settings) -> None:
    profile = session.profile()
    flags = session.content_flags()
    pct = session.completion()

    summary = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    summary.add_column("Key",   style="bold cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Kysely täytetty", "Kyllä" if profile.has_completed_survey else "[dim]Ei[/dim]")
    summary.add_row("Ikäryhmä", age_group_display(profile.age_group))
    summary.add_row("Elämäntavat",
                    ", ".join(lifestyle_display(f) for f in sorted(profile.lifestyle)) or "[dim]-[/dim]")
    summary.add_row("Terveydentila",
                    ", ".join(health_condition_display(c) for c in sorted(profile.health_conditions))
                    or "[dim]-[/dim]")
    summary.add_row("Näkymä", "Kaikki sisällöt" if profile.show_all_content else "Personoitu")
    risks = risk_factors(profile)
    if risks:
        summary.add_row("Riskitekijät", ", ".join(f"{r.factor} ({r.level})" for r in risks))
    console.print(Panel(summary, title="[bold]Profiili[/bold]", border_style="magenta"))

    shown = [name.replace("show_", "").replace("_content", "") for name, on in flags.as_dict().items() if on]
    console.print(Panel(", ".join(shown), title="[bold]Näytettävät sisällöt[/bold]", border_style="blue"))

    console.print(Panel(
        f"{_bar(pct)}\n[italic]{progress_message(pct)}[/italic]",
        title="[bold]Kokonaisedistyminen[/bold]",
        border_style="green",
    ))

    sections = Table(box=box.SIMPLE_HEAD, show_header=True, header_style="bold white on dark_violet")
    sections.add_column("Osio",        min_width=28)
    sections.add_column("Tärkeys",     justify="center")
    sections.add_column("Edistyminen", min_width=28)
    sections.add_column("Vierailtu",   justify="center")
    for row in session.overview():
        style = RELEVANCE_STYLE.get(row.relevance, "white")
        sections.add_row(
            f"{row.title} [dim]({row.id})[/dim]",
            f"[{style}]{row.relevance.value}[/{style}]",
            _bar(row.progress, 12),
            "[green]✓[/green]" if row.visited else "[dim]-[/dim]",
        )
    console.print(Panel(sections, title="[bold]Osiot[/bold]", border_style="cyan"))

    cfg = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
    cfg.add_column("Key", style="dim cyan")
    cfg.add_column("Value", style="dim")
    for key, value in settings.status_summary().items():
        cfg.add_row(key, value)
    if not session.store.persistent:
        cfg.add_row("Tallennus", "[yellow]vain tämä istunto[/yellow]")
    console.print(cfg)


# ─── Interactive prompts ─────────────────────────────────────────────────────

def _ask_survey_question(question: SurveyQuestion):
    console.print(f"\n[bold cyan]{question.title}[/bold cyan] [dim]{question.description}[/dim]")
    for n, option in enumerate(question.options, start=1):
        console.print(f"  {n}. {option.label}")
    if not question.multiple:
        n = IntPrompt.ask("   >", choices=[str(i) for i in range(1, len(question.options) + 1)])
        return question.options[n - 1].id
    raw = Prompt.ask("   > numerot pilkulla eroteltuna (tyhjä = ei mitään)", default="")
    chosen = []
    for part in raw.replace(" ", "").split(","):
        if part.isdigit() and 1 <= int(part) <= len(question.options):
            chosen.append(question.options[int(part) - 1].id)
    return chosen


def cmd_survey(session: GuideSession, args: argparse.Namespace) -> int:
    answers = {q.id: _ask_survey_question(q) for q in SURVEY_QUESTIONS}
    result = session.submit_survey(answers)
    if not result.success:
        return _fail(result.error)
    console.print("\n[bold green]✓ Vastaukset tallennettu[/bold green]")
    show_status(session, session.settings)
    return 0


def cmd_test(session: GuideSession, args: argparse.Namespace) -> int:
    instrument = INSTRUMENTS[args.instrument]
    console.print(Panel(f"[bold]{instrument.name}[/bold]", expand=False, style="on dark_violet"))
    answers = {}
    for q in instrument.questions:
        console.print(f"\n[bold]{q.id}. {q.text}[/bold]")
        for n, option in enumerate(q.options, start=1):
            console.print(f"  {n}. {option.label}")
        n = IntPrompt.ask("   >", choices=[str(i) for i in range(1, len(q.options) + 1)])
        answers[q.id] = q.options[n - 1].value

    result = session.submit_test(instrument.key, answers)
    if not result.success:
        return _fail(result.error)
    outcome = classify(instrument, result.value.score)
    console.print(Panel(
        f"[bold]{result.value.score}/{instrument.max_score}[/bold]\n\n"
        f"[bold]{outcome.title}[/bold]\n[dim]{outcome.description}[/dim]",
        title="[bold]Testin tulos[/bold]",
        border_style="green",
    ))
    if args.pdf:
        return _write_document(session, instrument.document_kind, None)
    return 0


# ─── Non-interactive commands ────────────────────────────────────────────────

def _write_document(session: GuideSession, kind: DocumentKind, output_dir: Optional[Path]) -> int:
    result = session.request_document(kind, output_dir=output_dir)
    if not result.success:
        console.print("[yellow]Dokumentin luonti epäonnistui (fallback).[/yellow]")
        return _fail(result.error)
    doc = result.value
    console.print(f"[bold green]✓[/bold green] {doc.path} [dim]({doc.document.page_count} sivua)[/dim]")
    return 0


def cmd_document(session: GuideSession, args: argparse.Namespace) -> int:
    return _write_document(session, DocumentKind(args.kind), args.output_dir)


def cmd_status(session: GuideSession, args: argparse.Namespace) -> int:
    show_status(session, session.settings)
    return 0


def cmd_visit(session: GuideSession, args: argparse.Namespace) -> int:
    result = session.mark_section_visited(args.section)
    if not result.success:
        return _fail(result.error)
    console.print(f"[green]✓[/green] {result.value} ({session.completion()}%)")
    return 0


def cmd_read(session: GuideSession, args: argparse.Namespace) -> int:
    result = session.toggle_read_section(args.section, args.topic)
    return 0 if result.success else _fail(result.error)


def cmd_done(session: GuideSession, args: argparse.Namespace) -> int:
    result = session.mark_section_done(args.section, not args.undo)
    return 0 if result.success else _fail(result.error)


def cmd_show_all(session: GuideSession, args: argparse.Namespace) -> int:
    result = session.set_show_all(args.state == "on")
    return 0 if result.success else _fail(result.error)


def cmd_history(session: GuideSession, args: argparse.Namespace) -> int:
    keys = [args.instrument] if args.instrument else list(INSTRUMENTS)
    for key in keys:
        instrument = INSTRUMENTS[key]
        table = Table(box=box.SIMPLE_HEAD, show_header=True, header_style="bold cyan")
        table.add_column("Päivämäärä")
        table.add_column("Pisteet", justify="right")
        table.add_column("Tulos")
        for entry in session.history(key):
            table.add_row(entry.date, f"{entry.score}/{instrument.max_score}",
                          classify(instrument, entry.score).title)
        console.print(Panel(table, title=f"[bold]{instrument.name}[/bold]", border_style="blue"))
    return 0


def cmd_reset(session: GuideSession, args: argparse.Namespace) -> int:
    question = "Poistetaanko kaikki tallennetut tiedot?" if args.all else "Nollataanko profiili ja edistyminen?"
    if not args.yes and not Confirm.ask(question, default=False):
        console.print("[dim]Peruttu.[/dim]")
        return 0
    result = session.clear_all() if args.all else session.reset()
    if not result.success:
        return _fail(result.error)
    console.print("[bold green]✓ Tiedot nollattu[/bold green]")
    return 0


def cmd_export(session: GuideSession, args: argparse.Namespace) -> int:
    result = session.export_data()
    if not result.success:
        return _fail(result.error)
    if args.file:
        Path(args.file).write_text(result.value, encoding="utf-8")
        console.print(f"[green]✓[/green] {args.file}")
    else:
        console.print_json(result.value)
    return 0


def cmd_import(session: GuideSession, args: argparse.Namespace) -> int:
    result = session.import_data(Path(args.file).read_text(encoding="utf-8"))
    if not result.success:
        return _fail(result.error)
    console.print("[bold green]✓ Tiedot palautettu[/bold green]")
    return 0


# ─── Main ────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="preop-guide", description="Leikkaukseen valmistautumisen opas")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("survey", help="answer the background survey").set_defaults(func=cmd_survey)
    sub.add_parser("status", help="show profile, completion and sections").set_defaults(func=cmd_status)

    p = sub.add_parser("test", help="take a screening test")
    p.add_argument("instrument", choices=sorted(INSTRUMENTS))
    p.add_argument("--pdf", action="store_true", help="also write the result report")
    p.set_defaults(func=cmd_test)

    p = sub.add_parser("document", help="write a PDF guide or test report")
    p.add_argument("kind", choices=[k.value for k in DocumentKind])
    p.add_argument("--output-dir", type=Path, default=None)
    p.set_defaults(func=cmd_document)

    p = sub.add_parser("visit", help="mark a section as visited")
    p.add_argument("section", help=f"one of {', '.join(SECTION_IDS)}")
    p.set_defaults(func=cmd_visit)

    p = sub.add_parser("read", help="toggle a sub-topic as read")
    p.add_argument("section")
    p.add_argument("topic")
    p.set_defaults(func=cmd_read)

    p = sub.add_parser("done", help="mark a section's task as done")
    p.add_argument("section")
    p.add_argument("--undo", action="store_true")
    p.set_defaults(func=cmd_done)

    p = sub.add_parser("show-all", help="switch between personalised and full content")
    p.add_argument("state", choices=["on", "off"])
    p.set_defaults(func=cmd_show_all)

    p = sub.add_parser("history", help="screening-test history")
    p.add_argument("instrument", nargs="?", choices=sorted(INSTRUMENTS))
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("reset", help="clear profile and progress")
    p.add_argument("--all", action="store_true", help="also remove test histories and preferences")
    p.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("export", help="write a JSON backup")
    p.add_argument("file", nargs="?")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="restore a JSON backup")
    p.add_argument("file")
    p.set_defaults(func=cmd_import)
    return parser


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.logging.level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    session = GuideSession(settings=settings)

    try:
        return args.func(session, args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Keskeytetty.[/yellow]")
        return 130
    except OSError as exc:
        return _fail(str(exc))


if __name__ == "__main__":
    sys.exit(main())
