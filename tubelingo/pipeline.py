"""Video to lesson pipeline: transcript, analysis, sentences, storage."""

from __future__ import annotations

from tubelingo.analysis import ContentAnalyzer, SentenceGenerator
from tubelingo.config import Config
from tubelingo.jobs import JobPoller
from tubelingo.logging import logger
from tubelingo.models import (
    AnalysisResult,
    PracticeSentence,
    Project,
    ProjectStatus,
    TranscriptResult,
    extract_video_id,
    watch_url,
)
from tubelingo.store import ProjectStore
from tubelingo.transcript import TranscriptAcquirer


class TranscriptError(Exception):
    """No usable transcript could be obtained for a video."""

    def __init__(self, result: TranscriptResult) -> None:
        super().__init__(result.error or "Failed to extract transcript")
        self.result = result

    @property
    def suggestion(self) -> str | None:
        return self.result.suggestion


class RateLimitedError(TranscriptError):
    """Transcript sources are rate limiting requests."""

    pass


class LessonPipeline:
    """Builds and maintains lesson projects.

    Args:
        config: Loaded configuration
        store: Project store
        acquirer: Transcript cascade (built from config when omitted)
        analyzer: Content analyzer (built from config when omitted)
        generator: Sentence generator (built from config when omitted)
        poller: Job poller; completion/failure callbacks are wired to
            complete_job/fail_job
    """

    def __init__(
        self,
        config: Config,
        store: ProjectStore,
        acquirer: TranscriptAcquirer | None = None,
        analyzer: ContentAnalyzer | None = None,
        generator: SentenceGenerator | None = None,
        poller: JobPoller | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.acquirer = acquirer or TranscriptAcquirer(config)
        self.analyzer = analyzer or ContentAnalyzer(config.keys.openai, config.ai)
        self.generator = generator or SentenceGenerator(config.keys.ai_gateway, config.ai)
        self.poller = poller
        if self.poller is None and self.acquirer.job_backend is not None:
            self.poller = JobPoller(self.acquirer.job_backend)
        if self.poller is not None:
            self.poller.on_complete = self._on_job_complete
            self.poller.on_failed = self._on_job_failed

    def _sentences(self, analysis: AnalysisResult, language: str) -> tuple[list[PracticeSentence], str | None]:
        if analysis.is_empty:
            return [], None
        if not analysis.vocabulary or not analysis.grammar:
            logger.warning("Skipping practice sentences: analysis lacks vocabulary or grammar")
            return [], None
        result = self.generator.generate(
            analysis.vocabulary, analysis.grammar, language, count=self.config.ai.sentence_count
        )
        return result.sentences, result.error

    def build_lesson(self, project: Project, language_name: str | None = None) -> Project:
        """Run analysis and sentence generation on a project's script.

        AI failures leave the lists empty; the project is still marked
        completed and the error kept in error_message.
        """
        analysis = self.analyzer.analyze(project.script)
        language = language_name or analysis.detected_language
        sentences, sentence_error = self._sentences(analysis, language)

        project.vocabulary = analysis.vocabulary
        project.grammar = analysis.grammar
        project.practice_sentences = sentences
        project.detected_language = language_name or analysis.detected_language
        project.status = ProjectStatus.COMPLETED
        project.error_message = analysis.error or sentence_error
        if project.error_message:
            logger.warning("Lesson '{}' built with AI errors: {}", project.title, project.error_message)
        return project

    def process_video(self, url: str, language_name: str | None = None, language_code: str | None = None) -> Project:
        """Turn a video URL into a stored lesson.

        Args:
            url: Video URL or ID
            language_name: Override for the detected language, used for
                practice sentences
            language_code: Preferred caption language code

        Returns:
            Completed project, or a pending one when the transcript is being
            generated by the job backend

        Raises:
            InvalidVideoError: If the URL has no video ID
            RateLimitedError: If transcript sources are rate limiting
            TranscriptError: If no usable transcript was found
        """
        video_id = extract_video_id(url)
        source_url = watch_url(video_id)
        result = self.acquirer.acquire(video_id, language=language_code)

        if result.error_kind == "rate_limited":
            raise RateLimitedError(result)
        if not result.ok and result.job_id is None:
            raise TranscriptError(result)

        title = result.video_title or f"Video Lesson - {video_id}"

        if result.job_id:
            project = self.store.save(
                Project(
                    title=title,
                    source_url=source_url,
                    status=ProjectStatus.PENDING,
                    job_id=result.job_id,
                    detected_language=language_name or "Unknown",
                )
            )
            if self.poller is not None:
                self.poller.start(result.job_id, project.id)
            logger.info("Lesson '{}' pending on job {}", title, result.job_id)
            return project

        project = Project(title=title, source_url=source_url, script=result.transcript or "")
        project = self.store.save(self.build_lesson(project, language_name))
        logger.info(
            "Lesson '{}' ready: {} vocabulary, {} grammar, {} sentences",
            project.title,
            project.vocabulary_count,
            project.grammar_count,
            len(project.practice_sentences),
        )
        return project

    def complete_job(self, job_id: str, transcript: str, title: str | None = None) -> Project | None:
        """Finish a pending project once its job produced a transcript.

        Returns:
            The updated project, or None if no project has this job id
        """
        project = self.store.get_by_job_id(job_id)
        if project is None:
            logger.warning("No project for completed job {}", job_id)
            return None
        if project.status == ProjectStatus.COMPLETED:
            logger.debug("Project {} already completed, ignoring job {}", project.id, job_id)
            return project

        checked = self.acquirer.check_length(transcript, title or project.title, method="job")
        if not checked.ok:
            return self.fail_job(job_id, checked.error or "Transcript too short")

        project.script = transcript
        if title:
            project.title = title
        language = project.detected_language if project.detected_language != "Unknown" else None
        project = self.store.save(self.build_lesson(project, language))
        logger.info("Job {} completed lesson '{}'", job_id, project.title)
        return project

    def fail_job(self, job_id: str, error: str) -> Project | None:
        """Mark the project waiting on a job as failed."""
        project = self.store.get_by_job_id(job_id)
        if project is None:
            logger.warning("No project for failed job {}", job_id)
            return None
        project.status = ProjectStatus.FAILED
        project.error_message = error
        logger.error("Lesson '{}' failed: {}", project.title, error)
        return self.store.save(project)

    def _on_job_complete(self, job_id: str, project_id: int | None, transcript: str) -> None:
        self.complete_job(job_id, transcript)

    def _on_job_failed(self, job_id: str, project_id: int | None, error: str) -> None:
        self.fail_job(job_id, error)

    def resume_pending(self) -> list[str]:
        """Register every stored pending project's job with the poller."""
        if self.poller is None:
            return []
        job_ids = []
        for project in self.store.list(status=ProjectStatus.PENDING):
            if project.job_id and self.poller.start(project.job_id, project.id):
                job_ids.append(project.job_id)
        return job_ids

    def regenerate(self, project_id: int) -> Project:
        """Re-run analysis and sentence generation on a stored script.

        Raises:
            ProjectNotFoundError: If the project does not exist
            ValueError: If the project has no script yet
        """
        project = self.store.get(project_id)
        if not project.script:
            msg = f"Project {project_id} has no transcript to analyze"
            raise ValueError(msg)
        return self.store.save(self.build_lesson(project))

    def set_language(self, project_id: int, language: str) -> Project:
        """Correct a project's language and regenerate its practice sentences."""
        project = self.store.get(project_id)
        project.detected_language = language
        analysis = AnalysisResult(
            detected_language=language, vocabulary=project.vocabulary, grammar=project.grammar
        )
        sentences, error = self._sentences(analysis, language)
        if sentences or not error:
            project.practice_sentences = sentences
        project.error_message = error
        logger.info("Project {} language set to {}", project_id, language)
        return self.store.save(project)
