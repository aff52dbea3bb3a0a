"""tubelingo CLI - turn YouTube videos into language lessons."""

import json
from pathlib import Path
from typing import Any

import fire
from rich.console import Console
from rich.table import Table

from tubelingo import __version__, yaml_ops
from tubelingo.captions import list_available_languages
from tubelingo.config import Config, get_config_path, load_config
from tubelingo.health import check_all
from tubelingo.http import FetchError, create_session
from tubelingo.logging import configure_logging, logger
from tubelingo.models import InvalidVideoError, Project, extract_video_id
from tubelingo.pipeline import LessonPipeline, RateLimitedError, TranscriptError
from tubelingo.store import ProjectNotFoundError, ProjectStore
from tubelingo.transcript import TranscriptAcquirer

console = Console()

# Environment variables shown by `tubelingo config`
KEY_ENV_NAMES = {
    "openai": "OPENAI_API_KEY",
    "ai_gateway": "AI_GATEWAY_API_KEY",
    "youtube": "YOUTUBE_API_KEY",
    "supadata": "SUPADATA_API_KEY",
}


class TubelingoCLI:
    """Language lessons from YouTube videos.

    Examples:
        tubelingo process "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        tubelingo --verbose transcript dQw4w9WgXcQ
        tubelingo --json-output ls --favorites
        tubelingo export 3 --output lesson.yaml
    """

    def __init__(self, verbose: bool = False, json_output: bool = False) -> None:
        """Initialize CLI with options.

        Args:
            verbose: Enable debug logging
            json_output: Output results as JSON instead of human-readable text
        """
        configure_logging(verbose)
        self._json = json_output
        self._config: Config | None = None
        self._store: ProjectStore | None = None
        self._pipeline: LessonPipeline | None = None
        logger.debug("tubelingo initialized with verbose={}, json={}", verbose, json_output)

    def _output(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Output result as JSON or print nothing (human output already printed)."""
        if self._json:
            print(json.dumps(data, indent=2, ensure_ascii=False))
        return data if self._json else None

    def _error(self, message: str, suggestion: str | None = None, **extra: Any) -> dict[str, Any] | None:
        if self._json:
            data: dict[str, Any] = {"error": message, **extra}
            if suggestion:
                data["suggestion"] = suggestion
            return self._output(data)
        console.print(f"[red]{message}[/red]")
        if suggestion:
            console.print(f"[yellow]{suggestion}[/yellow]")
        return None

    def _get_config(self) -> Config:
        if self._config is None:
            self._config = load_config()
        return self._config

    def _get_store(self) -> ProjectStore:
        if self._store is None:
            self._store = ProjectStore(self._get_config().get_database_path())
            self._store.init_db()
        return self._store

    def _get_pipeline(self) -> LessonPipeline:
        if self._pipeline is None:
            self._pipeline = LessonPipeline(self._get_config(), self._get_store())
        return self._pipeline

    def version(self) -> None:
        """Show tubelingo version."""
        if self._json:
            self._output({"version": __version__})
        else:
            console.print(f"tubelingo {__version__}")

    def config(self) -> dict[str, Any] | None:
        """Show configuration file location, database path and API key status.

        Example:
            tubelingo config
        """
        config_path = get_config_path()
        cfg = self._get_config()
        keys = {name: bool(getattr(cfg.keys, name)) for name in KEY_ENV_NAMES}

        if self._json:
            return self._output(
                {
                    "config_path": str(config_path),
                    "config_exists": config_path.exists(),
                    "database": str(cfg.get_database_path()),
                    "keys": keys,
                    "settings": cfg.model_dump(exclude={"keys"}),
                }
            )

        console.print(f"[bold]Config path:[/bold] {config_path}")
        if not config_path.exists():
            console.print("  [dim]not found, using defaults[/dim]")
        console.print(f"[bold]Database:[/bold] {cfg.get_database_path()}")
        console.print()
        console.print("[bold]API keys:[/bold]")
        for name, env_name in KEY_ENV_NAMES.items():
            status = "[green]set[/green]" if keys[name] else "[yellow]not set[/yellow]"
            console.print(f"  {env_name}: {status}")
        return None

    def languages(self, url: str) -> dict[str, Any] | None:
        """List caption languages available for a video.

        Args:
            url: Video URL or ID

        Example:
            tubelingo languages dQw4w9WgXcQ
        """
        try:
            video_id = extract_video_id(url)
            languages = list_available_languages(
                video_id, create_session(), timeout=self._get_config().transcript.request_timeout
            )
        except (InvalidVideoError, FetchError) as e:
            return self._error(str(e))

        if self._json:
            return self._output({"videoId": video_id, "languages": languages})

        if not languages:
            console.print("[yellow]No caption tracks found[/yellow]")
            return None
        for lang in languages:
            console.print(f"  {lang['code']:<8} {lang['name']} [dim]({lang['type']})[/dim]")
        return None

    def transcript(self, url: str, language: str | None = None) -> dict[str, Any] | None:
        """Fetch a transcript without analyzing or saving it.

        Args:
            url: Video URL or ID
            language: Preferred caption language code (e.g., ja)

        Example:
            tubelingo transcript https://youtu.be/dQw4w9WgXcQ --language en
        """
        try:
            video_id = extract_video_id(url)
        except InvalidVideoError as e:
            return self._error(str(e))

        result = TranscriptAcquirer(self._get_config()).acquire(video_id, language=language)

        if self._json:
            return self._output(result.to_dict())

        if result.job_id:
            console.print(f"[blue]Transcript job started: {result.job_id}[/blue]")
            return None
        if not result.ok:
            return self._error(result.error or "Transcript failed", result.suggestion)

        console.print(f"[bold]{result.video_title}[/bold] [dim](via {result.method})[/dim]")
        console.print()
        print(result.transcript)
        return None

    def process(
        self,
        url: str,
        language: str | None = None,
        caption_language: str | None = None,
        wait: bool = False,
    ) -> dict[str, Any] | None:
        """Build a lesson from a video and save it.

        Args:
            url: Video URL or ID
            language: Target language name for practice sentences
                (defaults to the detected language)
            caption_language: Preferred caption language code
            wait: If the transcript is generated asynchronously, poll until
                it finishes

        Example:
            tubelingo process https://youtu.be/dQw4w9WgXcQ
            tubelingo process VIDEO_ID --language Japanese --caption-language ja
        """
        if not self._json:
            console.print("[blue]Fetching transcript...[/blue]")
        try:
            project = self._get_pipeline().process_video(
                url, language_name=language, language_code=caption_language
            )
        except InvalidVideoError as e:
            return self._error(str(e))
        except RateLimitedError as e:
            return self._error("Rate Limit Exceeded", e.suggestion, errorKind="rate_limited")
        except TranscriptError as e:
            return self._error(str(e), e.suggestion, errorKind=e.result.error_kind)

        if project.job_id and wait and self._get_pipeline().poller is not None:
            if not self._json:
                console.print(f"[blue]Waiting for transcript job {project.job_id}...[/blue]")
            self._get_pipeline().poller.run(interval=self._get_config().jobs.poll_interval)
            project = self._get_store().get(project.id or 0)

        if self._json:
            return self._output(project.to_dict(include_script=False))
        self._print_summary(project)
        return None

    def poll(self, interval: float | None = None, max_polls: int | None = None) -> dict[str, Any] | None:
        """Poll pending transcript jobs until they finish.

        Args:
            interval: Seconds between polls (default from config)
            max_polls: Stop after this many rounds

        Example:
            tubelingo poll --max-polls 1
        """
        if self._get_pipeline().poller is None:
            return self._error("No job backend configured (set SUPADATA_API_KEY)")

        job_ids = self._get_pipeline().resume_pending()
        if not job_ids:
            if self._json:
                return self._output({"pending": 0, "remaining": 0})
            console.print("[green]No pending jobs[/green]")
            return None

        if not self._json:
            console.print(f"[blue]Polling {len(job_ids)} job(s)...[/blue]")
        remaining = self._get_pipeline().poller.run(
            interval=interval or self._get_config().jobs.poll_interval, max_polls=max_polls
        )

        if self._json:
            return self._output({"pending": len(job_ids), "remaining": remaining})
        console.print(f"Done: {len(job_ids) - remaining} finished, {remaining} still pending")
        return None

    def ls(self, favorites: bool = False) -> dict[str, Any] | None:
        """List saved lessons, newest first.

        Args:
            favorites: Only show favorites

        Example:
            tubelingo ls --favorites
        """
        projects = self._get_store().list(favorites_only=favorites)

        if self._json:
            return self._output(
                {"count": len(projects), "lessons": [p.to_dict(include_script=False) for p in projects]}
            )

        if not projects:
            console.print("[yellow]No lessons saved[/yellow]")
            return None

        table = Table()
        table.add_column("ID", justify="right")
        table.add_column("Title")
        table.add_column("Language")
        table.add_column("Vocab", justify="right")
        table.add_column("Grammar", justify="right")
        table.add_column("Status")
        for p in projects:
            star = "★ " if p.is_favorite else ""
            table.add_row(
                str(p.id),
                f"{star}{p.title}",
                p.detected_language,
                str(p.vocabulary_count),
                str(p.grammar_count),
                p.status.value,
            )
        console.print(table)
        return None

    def show(self, project_id: int, script: bool = False) -> dict[str, Any] | None:
        """Show a lesson's vocabulary, grammar and practice sentences.

        Args:
            project_id: Lesson ID (see `tubelingo ls`)
            script: Also print the full transcript
        """
        try:
            project = self._get_store().get(project_id)
            self._get_store().touch(project_id)
        except ProjectNotFoundError as e:
            return self._error(str(e))

        if self._json:
            return self._output(project.to_dict(include_script=script))

        self._print_summary(project)
        if project.vocabulary:
            console.print()
            console.print("[bold]Vocabulary[/bold]")
            for v in project.vocabulary:
                console.print(f"  {v.word} [dim]({v.difficulty})[/dim]: {v.definition}")
        if project.grammar:
            console.print()
            console.print("[bold]Grammar[/bold]")
            for g in project.grammar:
                console.print(f"  {g.rule}")
                if g.example:
                    console.print(f"    [cyan]{g.example}[/cyan]")
                if g.explanation:
                    console.print(f"    [dim]{g.explanation}[/dim]")
        if project.practice_sentences:
            console.print()
            console.print("[bold]Practice sentences[/bold]")
            for s in project.practice_sentences:
                console.print(f"  {s.text} [dim]({s.difficulty})[/dim]")
                if s.translation:
                    console.print(f"    [dim]{s.translation}[/dim]")
        if script and project.script:
            console.print()
            console.print("[bold]Transcript[/bold]")
            print(project.script)
        return None

    def favorite(self, project_id: int) -> dict[str, Any] | None:
        """Toggle a lesson's favorite flag."""
        try:
            value = self._get_store().toggle_favorite(project_id)
        except ProjectNotFoundError as e:
            return self._error(str(e))
        if self._json:
            return self._output({"id": project_id, "isFavorite": value})
        console.print(f"[green]{'Added to' if value else 'Removed from'} favorites[/green]")
        return None

    def delete(self, project_id: int) -> dict[str, Any] | None:
        """Delete a lesson."""
        try:
            self._get_store().delete(project_id)
        except ProjectNotFoundError as e:
            return self._error(str(e))
        if self._json:
            return self._output({"id": project_id, "deleted": True})
        console.print(f"[green]Deleted lesson {project_id}[/green]")
        return None

    def regenerate(self, project_id: int) -> dict[str, Any] | None:
        """Re-run vocabulary/grammar analysis and practice sentences."""
        try:
            project = self._get_pipeline().regenerate(project_id)
        except (ProjectNotFoundError, ValueError) as e:
            return self._error(str(e))
        if self._json:
            return self._output(project.to_dict(include_script=False))
        self._print_summary(project)
        return None

    def set_language(self, project_id: int, language: str) -> dict[str, Any] | None:
        """Correct a lesson's language and regenerate its practice sentences.

        Example:
            tubelingo set_language 3 Japanese
        """
        try:
            project = self._get_pipeline().set_language(project_id, language)
        except ProjectNotFoundError as e:
            return self._error(str(e))
        if self._json:
            return self._output(project.to_dict(include_script=False))
        self._print_summary(project)
        return None

    def export(
        self,
        project_id: int | None = None,
        output: str | None = None,
        favorites: bool = False,
        script: bool = True,
    ) -> str | dict[str, Any] | None:
        """Export lessons to YAML.

        Args:
            project_id: Lesson to export (default: all lessons)
            output: Output file (default: derived from the title, or lessons.yaml)
            favorites: When exporting all lessons, only favorites
            script: Include transcripts

        Example:
            tubelingo export 3
            tubelingo export --favorites --output favorites.yaml
        """
        try:
            if project_id is not None:
                projects = [self._get_store().get(project_id)]
            else:
                projects = self._get_store().list(favorites_only=favorites)
        except ProjectNotFoundError as e:
            return self._error(str(e))

        if not projects:
            return self._error("No lessons to export")

        if project_id is not None:
            out_path = Path(output or yaml_ops.safe_filename(projects[0].title))
        else:
            out_path = Path(output or "lessons.yaml")
        yaml_ops.save_yaml(out_path, projects, include_script=script)

        if self._json:
            return self._output({"path": str(out_path), "count": len(projects)})
        console.print(f"[green]Saved {len(projects)} lesson(s) to: {out_path}[/green]")
        return str(out_path)

    def check(self) -> dict[str, Any] | None:
        """Check API keys and service reachability."""
        checks = check_all(self._get_config())
        if self._json:
            return self._output({"checks": [c.to_dict() for c in checks]})
        for c in checks:
            mark = "[green]ok[/green]" if c.ok else "[red]fail[/red]"
            console.print(f"  {c.service:<12} {mark}  {c.message}")
        return None

    def _print_summary(self, project: Project) -> None:
        console.print(f"[bold]{project.title}[/bold] [dim]#{project.id}[/dim]")
        console.print(f"  {project.source_url}")
        if project.job_id and project.status.value == "pending":
            console.print(f"  [blue]Transcript job {project.job_id} pending; run `tubelingo poll`[/blue]")
            return
        console.print(
            f"  Language: {project.detected_language}, "
            f"{project.vocabulary_count} vocabulary, {project.grammar_count} grammar, "
            f"{len(project.practice_sentences)} sentences"
        )
        if project.error_message:
            console.print(f"  [yellow]{project.error_message}[/yellow]")


def main() -> None:
    """CLI entry point."""
    fire.Fire(TubelingoCLI)


if __name__ == "__main__":
    main()
