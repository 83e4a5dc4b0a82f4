"""Scan, generate and rewrite: running one recipe over a whole multi-module project."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional

from .accumulator import ProjectAccumulator
from .documents import BuildDocument, DocumentVisitor
from .reports import ReportSink

logger = logging.getLogger(__name__)


class PipelinePhase(Enum):
    SCAN = "scan"
    GENERATE = "generate"
    REWRITE = "rewrite"
    DONE = "done"


_PHASE_ORDER = list(PipelinePhase)


class PipelineStateError(RuntimeError):
    """Raised when pipeline phases are entered out of order or a pipeline is reused."""


class ScanningRecipe:
    """
    Base class for analyses that need to see every document before changing any.

    A recipe scans each document into an accumulator, may generate new documents once
    scanning is complete, and finally rewrites documents using the frozen accumulator.
    Subclasses override the hooks they need; the defaults do nothing.
    """

    name = "recipe"
    description = ""

    def validate(self) -> None:
        """Raise ConfigurationError if the recipe's options cannot work."""

    def initial_value(self) -> ProjectAccumulator:
        return ProjectAccumulator()

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:
        return DocumentVisitor()

    def generate(self, accumulator: ProjectAccumulator, documents: List[BuildDocument],
                 reports: ReportSink) -> List[BuildDocument]:
        return []

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        return DocumentVisitor()

    def __str__(self) -> str:
        return self.name


@dataclass
class RunResult:
    """
    Outcome of a pipeline run.

    Attributes:
        documents: Input documents after rewriting, in input order
        generated: Documents created by the recipe, after rewriting
        changed: Paths of documents that differ from their input (every generated path included)
        reports: Rows emitted during the run
        accumulator: Frozen state gathered while scanning
    """
    documents: List[BuildDocument]
    generated: List[BuildDocument]
    changed: List[str]
    reports: ReportSink
    accumulator: Any = None
    errors: List[str] = field(default_factory=list)

    @property
    def all_documents(self) -> List[BuildDocument]:
        return self.documents + self.generated


class Pipeline:
    """
    Runs one recipe over a set of documents in three strictly ordered phases.

    A pipeline runs once; create a new one for every run.
    """

    def __init__(self, recipe: ScanningRecipe, max_workers: int = 1, reports: Optional[ReportSink] = None):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.recipe = recipe
        self.max_workers = max_workers
        self.reports = reports if reports is not None else ReportSink()
        self.phase: Optional[PipelinePhase] = None
        self._errors: List[str] = []

    def _enter(self, phase: PipelinePhase) -> None:
        if self.phase is None:
            expected = _PHASE_ORDER[0]
        elif self.phase is PipelinePhase.DONE:
            raise PipelineStateError("Pipeline has already completed")
        else:
            expected = _PHASE_ORDER[_PHASE_ORDER.index(self.phase) + 1]
        if phase is not expected:
            raise PipelineStateError(f"Cannot enter {phase.value} phase, expected {expected.value}")
        logger.info(f"{self.recipe}: {phase.value} phase")
        self.phase = phase

    def run(self, documents: Iterable[BuildDocument]) -> RunResult:
        """
        Run the recipe.

        Args:
            documents: Every document of the project

        Returns:
            RunResult with rewritten and generated documents

        Raises:
            ConfigurationError: If the recipe's options are invalid (nothing is scanned)
            PipelineStateError: If this pipeline has already run
        """
        if self.phase is not None:
            raise PipelineStateError("Pipeline has already run; create a new one")

        self.recipe.validate()
        inputs = list(documents)
        accumulator = self.recipe.initial_value()

        self._enter(PipelinePhase.SCAN)
        self._scan(inputs, accumulator)
        accumulator.freeze()

        self._enter(PipelinePhase.GENERATE)
        generated = self._generate(accumulator, inputs)

        self._enter(PipelinePhase.REWRITE)
        visitor = self.recipe.visitor(accumulator, self.reports)
        rewritten = [self._rewrite(visitor, doc) for doc in inputs]
        rewritten_generated = [self._rewrite(visitor, doc) for doc in generated]

        changed = [after.path for before, after in zip(inputs, rewritten) if after != before]
        changed.extend(doc.path for doc in rewritten_generated)

        self._enter(PipelinePhase.DONE)
        logger.info(f"{self.recipe}: {len(changed)} document(s) changed, {len(self.reports)} report row(s)")
        return RunResult(
            documents=rewritten,
            generated=rewritten_generated,
            changed=changed,
            reports=self.reports,
            accumulator=accumulator,
            errors=list(self._errors),
        )

    def _scan(self, documents: List[BuildDocument], accumulator: ProjectAccumulator) -> None:
        scanner = self.recipe.scanner(accumulator)
        if self.max_workers == 1 or len(documents) < 2:
            for doc in documents:
                self._scan_one(scanner, doc)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            # Consume the iterator so every visit has finished before the accumulator freezes
            list(executor.map(lambda doc: self._scan_one(scanner, doc), documents))

    def _scan_one(self, scanner: DocumentVisitor, document: BuildDocument) -> None:
        try:
            scanner.visit(document)
        except Exception as e:
            logger.error(f"Failed to scan {document.path}, skipping it: {e}")
            logger.debug("Scan failure", exc_info=True)
            self._errors.append(f"scan {document.path}: {e}")

    def _generate(self, accumulator: ProjectAccumulator, documents: List[BuildDocument]) -> List[BuildDocument]:
        try:
            generated = list(self.recipe.generate(accumulator, documents, self.reports))
        except Exception as e:
            logger.error(f"Failed to generate documents: {e}")
            logger.debug("Generate failure", exc_info=True)
            self._errors.append(f"generate: {e}")
            return []
        if generated:
            logger.info(f"Generated {len(generated)} document(s): {', '.join(d.path for d in generated)}")
        return generated

    def _rewrite(self, visitor: DocumentVisitor, document: BuildDocument) -> BuildDocument:
        try:
            result = visitor.visit(document)
        except Exception as e:
            logger.error(f"Failed to rewrite {document.path}, leaving it unchanged: {e}")
            logger.debug("Rewrite failure", exc_info=True)
            self._errors.append(f"rewrite {document.path}: {e}")
            return document
        return document if result is None else result
