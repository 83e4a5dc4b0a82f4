"""Produce a CycloneDX SBOM next to every Maven and Gradle build file."""

import logging
from typing import Dict, List

from ..accumulator import ProjectAccumulator
from ..documents import BuildDocument, DocumentKind, DocumentVisitor
from ..formatters import OutputFormatter
from ..pipeline import ScanningRecipe
from ..reports import ReportSink

logger = logging.getLogger(__name__)

SBOM_FILE_NAME = "sbom.xml"

# accumulator.paths keys
_EXPECTED = "sbom"
_EXISTING = "existing-sbom"


def sbom_path_for(document: BuildDocument) -> str:
    return document.directory + SBOM_FILE_NAME


class SoftwareBillOfMaterials(ScanningRecipe):
    """
    Produces a software bill of materials for each project.

    The SBOM lists every dependency of the project, including transitive ones, in the
    CycloneDX 1.6 XML format, and is written to sbom.xml beside the build file. An
    existing sbom.xml is only replaced when its content differs.
    """

    name = "software-bill-of-materials"
    description = "Produces a CycloneDX software bill of materials for each Maven or Gradle project."

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:

        class SbomScanner(DocumentVisitor[None]):
            def visit_text(self, document: BuildDocument) -> None:
                if document.path.replace('\\', '/').endswith(SBOM_FILE_NAME):
                    accumulator.merge_path(_EXISTING, document.path)

            def default(self, document: BuildDocument) -> None:
                if document.resolved:
                    accumulator.merge_path(_EXPECTED, sbom_path_for(document))

        return SbomScanner()

    def generate(self, accumulator: ProjectAccumulator, documents: List[BuildDocument],
                 reports: ReportSink) -> List[BuildDocument]:
        # Where two build files share a directory, the last one wins
        sources: Dict[str, BuildDocument] = {}
        for document in documents:
            if document.is_build_file and document.resolved:
                sources[sbom_path_for(document)] = document
        accumulator.generated['sbom_sources'] = sources

        missing = sorted(accumulator.paths.get(_EXPECTED, set()) - accumulator.paths.get(_EXISTING, set()))
        return [BuildDocument(path=path, kind=DocumentKind.TEXT) for path in missing]

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        sources: Dict[str, BuildDocument] = accumulator.generated.get('sbom_sources', {})

        class SbomWriter(DocumentVisitor[BuildDocument]):
            def visit_text(self, document: BuildDocument) -> BuildDocument:
                source = sources.get(document.path)
                if source is None:
                    return document
                sbom = OutputFormatter.format_as_sbom(source)
                if OutputFormatter.sboms_equivalent(document.text, sbom):
                    logger.debug(f"{document.path} is up to date")
                    return document
                logger.info(f"Writing SBOM for {source.project_id} to {document.path}")
                return document.with_text(sbom)

        return SbomWriter()
