"""CLI entry point for Storyloop."""

import asyncio
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from storyloop import __version__
from storyloop.config import ConfigManager
from storyloop.models.analysis import GapAnalysisResult
from storyloop.models.diff import lcs_word_diff, render_word_diff, summarize_diff, word_diff
from storyloop.models.story import Story
from storyloop.models.workflow import WorkflowStep
from storyloop.services.exceptions import DuplicateVariantError
from storyloop.services.variant_store import VariantStore
from storyloop.services.workflow import TargetProfile, WorkflowController, WorkflowHooks
from storyloop.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)
console = Console()


def load_config(path: Optional[Path]) -> ConfigManager:
    """
    Load configuration from ``path`` or ~/.config/storyloop/config.yaml.

    Raises:
        click.ClickException: If config is missing, has invalid permissions, or validation fails
    """
    try:
        if path is None:
            return ConfigManager.load_default()
        return ConfigManager.load_from_path(path)
    except (FileNotFoundError, PermissionError, ValueError) as e:
        raise click.ClickException(str(e))


def load_story(path: Path) -> Story:
    try:
        story = Story.load(path)
    except (FileNotFoundError, ValueError) as e:
        logger.error("story_load_error", path=str(path), error=str(e))
        raise click.ClickException(str(e))
    logger.info("story_loaded", path=str(path), story_id=story.id, variant_count=len(story.variants))
    return story


def build_store(story: Story, minimal: bool = False) -> VariantStore:
    try:
        return VariantStore(story.block, story.variants, diff=lcs_word_diff if minimal else word_diff)
    except DuplicateVariantError as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version=__version__, prog_name="storyloop")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (default: ~/.config/storyloop/config.yaml)",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write logs here instead of ~/.cache/storyloop/logs/storyloop.log",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_file: Optional[Path], verbose: bool):
    """Storyloop: keep variants of your career stories and tailor them to a job."""
    configure_logging(log_file=log_file, verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("original")
@click.argument("modified")
@click.option("--minimal", is_flag=True, help="Use the minimal (LCS) word alignment")
def diff(original: str, modified: str, minimal: bool):
    """
    Show a word diff between two texts.

    Examples:
        storyloop diff "Led a team of 5" "Led a team of 8 engineers"
        storyloop diff --minimal "a b c" "c b a"
    """
    tokens = (lcs_word_diff if minimal else word_diff)(original, modified)
    counts = summarize_diff(tokens)
    logger.info("diff_command", minimal=minimal, **counts)

    console.print(render_word_diff(tokens))
    console.print(
        f"[dim]{counts['unchanged']} unchanged, {counts['added']} added, {counts['removed']} removed[/dim]"
    )


@cli.command()
@click.argument("story_file", type=click.Path(path_type=Path))
def rank(story_file: Path):
    """
    List a story's variants in priority order.

    Gap-filling variants come first, then job-targeted ones, then the rest.
    """
    story = load_story(story_file)
    store = build_store(story)

    table = Table(title=story.title or story.id)
    table.add_column("#", justify="right")
    table.add_column("Id")
    table.add_column("Label")
    table.add_column("Class")
    table.add_column("Content")

    for index, variant in enumerate(store.get_ordered_variants()):
        table.add_row(
            str(index + 1),
            variant.id,
            variant.label(index),
            variant.classification.value,
            variant.content if len(variant.content) <= 60 else variant.content[:57] + "...",
        )

    console.print(table)


def _print_gaps(result: GapAnalysisResult) -> None:
    table = Table(title=f"Gap analysis (score {result.overall_score})")
    table.add_column("Gap")
    table.add_column("Severity")
    table.add_column("Suggestion")
    for gap in result.gaps:
        table.add_row(gap.description, gap.severity, gap.suggestion)
    console.print(table)


async def run_tailor(
    controller: WorkflowController,
    variant_id: str,
    mode: str,
    assume_yes: bool,
) -> bool:
    """
    Drive one workflow session in the terminal.

    Returns:
        True if content was finalized
    """
    if not controller.select_variant(variant_id):
        raise click.ClickException(f"Unknown variant: {variant_id}")

    console.rule(WorkflowStep.GAP_ANALYSIS.title)
    gaps = await controller.run_gap_analysis()
    if gaps is not None and gaps.available:
        _print_gaps(gaps)
    else:
        console.print("[yellow]Gap analysis unavailable[/yellow]")
    controller.complete_step(WorkflowStep.GAP_ANALYSIS)

    console.rule(WorkflowStep.COMPLIANCE_ASSESSMENT.title)
    compliance = await controller.run_compliance_assessment()
    if compliance is not None and compliance.available:
        console.print(f"Overall {compliance.overall}  keywords {compliance.keyword_match}  "
                      f"formatting {compliance.formatting}")
        if compliance.missing_keywords:
            console.print(f"Missing keywords: {', '.join(compliance.missing_keywords)}")
    else:
        console.print("[yellow]ATS assessment unavailable[/yellow]")
    controller.complete_step(WorkflowStep.COMPLIANCE_ASSESSMENT)

    console.rule(WorkflowStep.ROLE_ASSESSMENT.title)
    alignment = await controller.run_role_assessment()
    if alignment is not None and alignment.available:
        console.print(f"Alignment {alignment.alignment_score}")
        for suggestion in alignment.level_suggestions:
            console.print(f"  - {suggestion}")
    else:
        console.print("[yellow]Role assessment unavailable[/yellow]")
    controller.complete_step(WorkflowStep.ROLE_ASSESSMENT)

    console.rule(WorkflowStep.CONTENT_GENERATION.title)
    generated = await controller.generate_content(mode)
    if generated is not None and generated.available:
        original = controller.session.working_content or ""
        console.print(render_word_diff(word_diff(original, generated.content)))
        if assume_yes or click.confirm("Use the generated content?", default=True):
            controller.apply_generated_content(generated.content, controller.gaps.open_gaps())
    else:
        console.print("[yellow]Content generation unavailable[/yellow]")
    if controller.current_step == WorkflowStep.CONTENT_GENERATION:
        controller.complete_step(WorkflowStep.CONTENT_GENERATION)

    console.rule(WorkflowStep.REVIEW_AND_EDIT.title)
    if controller.session.has_unsaved_changes:
        console.print("[cyan]Recovered an unsaved draft[/cyan]")
    console.print(controller.session.working_content or "")

    if not assume_yes and click.confirm("Edit before saving?", default=False):
        edited = click.edit(controller.session.working_content or "")
        if edited is not None:
            controller.edit_content(edited.strip())

    if not assume_yes and not click.confirm("Save this content?", default=True):
        # Draft stays in place for the next run
        return False

    return controller.save_and_exit(controller.session.working_content or "")


@cli.command()
@click.argument("story_file", type=click.Path(path_type=Path))
@click.option("--job-file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Text file with the job description")
@click.option("--keyword", "keywords", multiple=True, help="Keyword the content should mention (repeatable)")
@click.option("--role", default="", help="Target role, e.g. 'Senior Product Manager'")
@click.option("--level", default="", help="Target level, e.g. 'senior'")
@click.option("--variant", "variant_id", help="Variant to start from (default: highest priority)")
@click.option("--mode", type=click.Choice(["enhance", "expand", "rewrite"]), default="enhance",
              show_default=True, help="How to generate new content")
@click.option("--yes", "assume_yes", is_flag=True, help="Accept generated content and save without asking")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path),
              help="Write the final content here instead of printing it")
@click.pass_context
def tailor(
    ctx: click.Context,
    story_file: Path,
    job_file: Optional[Path],
    keywords: tuple[str, ...],
    role: str,
    level: str,
    variant_id: Optional[str],
    mode: str,
    assume_yes: bool,
    output: Optional[Path],
):
    """
    Tailor a story to a job, step by step.

    Runs gap analysis, ATS and role assessment, generates new content and
    lets you review it. Edits are autosaved as drafts and recovered on the
    next run.

    Examples:
        storyloop tailor story.yaml --job-file jd.txt --keyword roadmap --role "Senior PM"
        storyloop tailor story.yaml --variant v2 --yes --output tailored.txt
    """
    logger.info("tailor_command_started", story_file=str(story_file), variant_id=variant_id, mode=mode)

    config_mgr = load_config(ctx.obj.get("config_path") if ctx.obj else None)
    story = load_story(story_file)
    store = build_store(story)

    if not len(store):
        raise click.ClickException(f"Story {story.id} has no variants to tailor")
    variant_id = variant_id or store.get_ordered_variants()[0].id

    target = TargetProfile(
        role=role,
        level=level,
        job_description=job_file.read_text(encoding="utf-8") if job_file else "",
        keywords=list(keywords),
    )

    finalized: list[str] = []
    hooks = WorkflowHooks(
        on_content_finalized=finalized.append,
        on_gap_resolved=lambda gap_id: console.print(f"[green]Resolved gap:[/green] {gap_id}"),
    )

    async def run() -> bool:
        controller = WorkflowController(
            store,
            config_mgr.build_analysis_service(),
            target=target,
            drafts=config_mgr.build_draft_persistence(),
            hooks=hooks,
            auto_dismiss_delay=config_mgr.gaps.auto_dismiss_seconds,
            clear_draft_on_reset=config_mgr.drafts.clear_on_reset,
        )
        try:
            return await run_tailor(controller, variant_id, mode, assume_yes)
        finally:
            controller.close()

    if not asyncio.run(run()):
        click.echo("Not saved. Your draft will be offered next time.")
        logger.info("tailor_command_abandoned", variant_id=variant_id)
        return

    content = finalized[0]
    if output:
        output.write_text(content + "\n", encoding="utf-8")
        click.echo(f"Saved to {output}")
    else:
        console.rule("Final")
        click.echo(content)
    logger.info("tailor_command_completed", variant_id=variant_id, output=str(output) if output else None)


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()
