"""Main CLI entry point for deptidy."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import ConfigurationError, Settings
from .documents import BuildDocument, DocumentKind
from .formatters import OutputFormatter
from .parsers import FileParser, ProjectModelError, write_project_model
from .pipeline import Pipeline, RunResult, ScanningRecipe
from .recipes import (
    DependencyLicenseCheck,
    DependencyList,
    DependencyResolutionDiagnostic,
    FindMinimumDependencyVersion,
    FindVulnerableDependencies,
    RelocatedDependencyCheck,
    RemoveRedundantDependencies,
    SoftwareBillOfMaterials,
    advisory_file_scanner,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_level: Optional[str] = None):
    """Configure logging based on verbosity flags."""
    if log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def load_documents(input_file: str) -> Optional[List[BuildDocument]]:
    """Load the input, printing the problem and returning None if it cannot be read."""
    try:
        documents = FileParser.load(input_file)
    except (OSError, ProjectModelError, ValueError) as e:
        logger.error(f"Error parsing input file: {e}")
        print(f"Error parsing input file: {e}", file=sys.stderr)
        return None

    if not documents:
        print("No documents found in the input file. Check format and try again.", file=sys.stderr)
        return None
    logger.info(f"Loaded {len(documents)} documents from {input_file}")
    return documents


def write_results(args, result: RunResult) -> None:
    """Print reports and markers, and write the rewritten model and text documents."""
    if args.report:
        Path(args.report).write_text(result.reports.to_json() + '\n', encoding='utf-8')
        logger.info(f"Wrote report to {args.report}")
    elif args.report_format == 'json':
        print(result.reports.to_json())
    else:
        print(OutputFormatter.format_reports(result.reports), end='')

    changed = set(result.changed)
    if args.report_format == 'text':
        for document in result.all_documents:
            if document.path in changed:
                for marker in document.markers:
                    print(f"{document.path}: [{marker.level}] {marker.message}")

    if args.output:
        write_project_model(result.all_documents, args.output)
        logger.info(f"Wrote {len(result.all_documents)} documents to {args.output}")

    if args.root:
        for document in result.all_documents:
            if document.kind is DocumentKind.TEXT and document.path in changed:
                target = Path(args.root) / document.path
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(document.text, encoding='utf-8')
                logger.info(f"Wrote {target}")

    for path in result.changed:
        logger.info(f"Changed: {path}")


def run_recipe(args, recipe: ScanningRecipe, settings: Settings) -> int:
    """Run a recipe over the input file. Returns the process exit code."""
    documents = load_documents(args.input)
    if documents is None:
        return 1

    workers = args.workers or settings.max_workers
    try:
        result = Pipeline(recipe, max_workers=workers).run(documents)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    write_results(args, result)
    return 0


def handle_remove_redundant(args, settings: Settings):
    """Handle the 'remove-redundant' subcommand."""
    recipe = RemoveRedundantDependencies(
        args.group, args.artifact, scope=args.scope, configuration=args.configuration, settings=settings
    )
    return run_recipe(args, recipe, settings)


def handle_min_version(args, settings: Settings):
    """Handle the 'min-version' subcommand."""
    return run_recipe(args, FindMinimumDependencyVersion(args.group, args.artifact), settings)


def handle_sbom(args, settings: Settings):
    """Handle the 'sbom' subcommand."""
    return run_recipe(args, SoftwareBillOfMaterials(), settings)


def handle_diagnose(args, settings: Settings):
    """Handle the 'diagnose' subcommand."""
    recipe = DependencyResolutionDiagnostic(args.group, args.artifact, args.probe_version, settings=settings)
    return run_recipe(args, recipe, settings)


def handle_relocated(args, settings: Settings):
    """Handle the 'relocated' subcommand."""
    return run_recipe(args, RelocatedDependencyCheck(args.migrations), settings)


def handle_list(args, settings: Settings):
    """Handle the 'list' subcommand."""
    recipe = DependencyList(
        args.scope, include_transitive=args.transitive, validate_resolvable=args.validate_resolvable,
        settings=settings,
    )
    return run_recipe(args, recipe, settings)


def handle_licenses(args, settings: Settings):
    """Handle the 'licenses' subcommand."""
    return run_recipe(args, DependencyLicenseCheck(args.scope, add_markers=args.add_markers), settings)


def handle_vulnerabilities(args, settings: Settings):
    """Handle the 'vulnerabilities' subcommand."""
    recipe = FindVulnerableDependencies(advisory_file_scanner(args.advisories))
    return run_recipe(args, recipe, settings)


def handle_tree(args, settings: Settings):
    """Handle the 'tree' subcommand."""
    documents = load_documents(args.input)
    if documents is None:
        return 1

    build_files = [doc for doc in documents if doc.is_build_file]
    if args.tree_format == 'json':
        print(json.dumps({doc.path: doc.project_id for doc in build_files}, indent=2))
        return 0
    for document in build_files:
        if args.tree_format == 'maven':
            print(OutputFormatter.format_as_maven_tree(document), end='')
        else:
            print(OutputFormatter.format_as_tree(document), end='')
    return 0


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('input', help='Project model (.json) or mvn dependency:tree output')
    common.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')
    common.add_argument('--loglevel',
                        choices=['TRACE', 'DEBUG', 'INFO', 'WARN', 'ERROR'],
                        help='Set log level')
    return common


def _run_options() -> argparse.ArgumentParser:
    run = argparse.ArgumentParser(add_help=False)
    run.add_argument('-o', '--output',
                     help='Write the rewritten project model to this file')
    run.add_argument('--report',
                     help='Write report tables as JSON to this file instead of printing them')
    run.add_argument('--format', dest='report_format', default='text', choices=['text', 'json'],
                     help='Report format on stdout (text, json). Default: text')
    run.add_argument('--root',
                     help='Write changed and generated text documents (such as sbom.xml) below this directory')
    run.add_argument('--workers', type=int, default=None,
                     help='Threads used to scan documents. Default: DEPTIDY_WORKERS or 1')
    return run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='deptidy',
        description='Analyze and tidy Maven and Gradle dependency declarations across a whole project'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Subcommands')
    common = _common_options()
    run = _run_options()

    redundant_parser = subparsers.add_parser(
        'remove-redundant', parents=[common, run],
        help='Remove dependencies already provided transitively by another dependency')
    redundant_parser.add_argument('--group', required=True,
                                  help='Group of the parent dependency (glob)')
    redundant_parser.add_argument('--artifact', required=True,
                                  help='Artifact of the parent dependency (glob)')
    redundant_parser.add_argument('--scope',
                                  help='Only consider this Maven scope (compile, runtime, provided, test)')
    redundant_parser.add_argument('--configuration',
                                  help='Only consider this Gradle configuration')
    redundant_parser.set_defaults(func=handle_remove_redundant)

    min_parser = subparsers.add_parser(
        'min-version', parents=[common, run],
        help='Find the oldest matching dependency version in use')
    min_parser.add_argument('--group', required=True, help='Group pattern (glob)')
    min_parser.add_argument('--artifact', required=True, help='Artifact pattern (glob)')
    min_parser.set_defaults(func=handle_min_version)

    sbom_parser = subparsers.add_parser(
        'sbom', parents=[common, run],
        help='Produce a CycloneDX sbom.xml next to every build file')
    sbom_parser.set_defaults(func=handle_sbom)

    diagnose_parser = subparsers.add_parser(
        'diagnose', parents=[common, run],
        help='Check repository accessibility and dependency resolution errors')
    diagnose_parser.add_argument('--group', help='Group of the artifact to download from each repository')
    diagnose_parser.add_argument('--artifact', help='Artifact to download from each repository')
    diagnose_parser.add_argument('--probe-version', help='Version of the artifact to download')
    diagnose_parser.set_defaults(func=handle_diagnose)

    relocated_parser = subparsers.add_parser(
        'relocated', parents=[common, run],
        help='Find dependencies that have been relocated')
    relocated_parser.add_argument('--migrations',
                                  help='CSV relocation table. Default: bundled table')
    relocated_parser.set_defaults(func=handle_relocated)

    list_parser = subparsers.add_parser(
        'list', parents=[common, run],
        help='List the dependencies of every project')
    list_parser.add_argument('--scope', default='Compile',
                             choices=['Compile', 'Runtime', 'TestRuntime'],
                             help='Scope to list (Compile, Runtime, TestRuntime). Default: Compile')
    list_parser.add_argument('--transitive', action='store_true',
                             help='Include transitive dependencies')
    list_parser.add_argument('--validate-resolvable', action='store_true',
                             help='Download every listed dependency and report failures')
    list_parser.set_defaults(func=handle_list)

    licenses_parser = subparsers.add_parser(
        'licenses', parents=[common, run],
        help='Report the licenses of third-party dependencies')
    licenses_parser.add_argument('--scope', default='compile',
                                 choices=['compile', 'runtime', 'provided', 'test'],
                                 help='Maven scope to report on. Default: compile')
    licenses_parser.add_argument('--add-markers', action='store_true',
                                 help='Mark each project with the licenses its dependencies use')
    licenses_parser.set_defaults(func=handle_licenses)

    vuln_parser = subparsers.add_parser(
        'vulnerabilities', parents=[common, run],
        help='Mark dependencies that include known vulnerable versions')
    vuln_parser.add_argument('--advisories', required=True,
                             help='JSON file mapping group:artifact:version to vulnerabilities')
    vuln_parser.set_defaults(func=handle_vulnerabilities)

    tree_parser = subparsers.add_parser(
        'tree', parents=[common],
        help='Display the dependency tree of every project')
    tree_parser.add_argument('--tree-style', dest='tree_format', default='unicode',
                             choices=['unicode', 'maven', 'json'],
                             help='Tree visualization style (unicode, maven, json). Default: unicode')
    tree_parser.set_defaults(func=handle_tree)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.loglevel)

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    # Execute command
    try:
        return args.func(args, settings)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
