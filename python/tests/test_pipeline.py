"""Tests for the scan, generate and rewrite pipeline, driven by redundant dependency removal."""

import pytest

from builders import JACKSON_POMS, StubFetcher, gradle, jackson_tree, maven, node, text
from deptidy.accumulator import AccumulatorFrozenError
from deptidy.closure import ClosureResolver
from deptidy.config import ConfigurationError
from deptidy.documents import DocumentVisitor
from deptidy.pipeline import Pipeline, PipelinePhase, PipelineStateError, ScanningRecipe
from deptidy.recipes import RemoveRedundantDependencies
from deptidy.reports import RedundantDependencyRow

CORE_17 = "com.fasterxml.jackson.core:jackson-core:2.17.0"
CORE_16 = "com.fasterxml.jackson.core:jackson-core:2.16.0"


def jackson_recipe(fetcher=None, **kwargs):
    resolver = ClosureResolver(fetcher or StubFetcher(*JACKSON_POMS))
    return RemoveRedundantDependencies("com.fasterxml.jackson*", "jackson-databind", resolver=resolver, **kwargs)


def jackson_project():
    return [
        maven("module-a/pom.xml", "module-a", {"compile": [jackson_tree(), node(CORE_17)]}),
        maven("module-b/pom.xml", "module-b", {"compile": [jackson_tree(), node(CORE_16)]}),
        text("README.md", "# demo"),
    ]


def artifacts(document, scope):
    return [n.artifact for n in document.direct_dependencies(scope)]


class TestRemoveRedundantDependencies:
    """End-to-end removal of dependencies provided by jackson-databind."""

    def test_exact_match_removed_and_pinned_version_kept(self):
        """Test jackson-core 2.17.0 is removed while a pinned 2.16.0 stays."""
        result = Pipeline(jackson_recipe()).run(jackson_project())

        module_a, module_b, readme = result.documents
        assert artifacts(module_a, "compile") == ["jackson-databind"]
        assert artifacts(module_b, "compile") == ["jackson-databind", "jackson-core"]
        assert result.changed == ["module-a/pom.xml"]
        assert readme.text == "# demo"

    def test_report_row(self):
        """Test every removal is reported."""
        result = Pipeline(jackson_recipe()).run(jackson_project())

        assert result.reports.rows(RedundantDependencyRow) == [RedundantDependencyRow(
            project="com.example:module-a",
            path="module-a/pom.xml",
            scope="compile",
            group="com.fasterxml.jackson.core",
            artifact="jackson-core",
            version="2.17.0",
        )]

    def test_second_run_changes_nothing(self):
        """Test running again over the output is a no-op."""
        first = Pipeline(jackson_recipe()).run(jackson_project())

        second = Pipeline(jackson_recipe()).run(first.documents)

        assert second.changed == []
        assert len(second.reports) == 0
        assert all(a is b for a, b in zip(first.documents, second.documents))

    def test_document_order_does_not_matter(self):
        """Test reversed input gives the same documents and the same accumulated state."""
        forward = Pipeline(jackson_recipe()).run(jackson_project())
        backward = Pipeline(jackson_recipe()).run(list(reversed(jackson_project())))

        by_path = {doc.path: doc for doc in backward.documents}
        for doc in forward.documents:
            assert by_path[doc.path].dependencies.keys() == doc.dependencies.keys()
            for scope in doc.dependencies:
                assert artifacts(by_path[doc.path], scope) == artifacts(doc, scope)
        assert forward.accumulator.snapshot() == backward.accumulator.snapshot()
        assert sorted(forward.changed) == sorted(backward.changed)

    def test_threaded_scan_matches_sequential(self):
        """Test scanning with several workers gives the same outcome."""
        project = jackson_project() + [
            maven(f"module-{i}/pom.xml", f"module-{i}", {"compile": [jackson_tree(), node(CORE_17)]})
            for i in range(10)
        ]

        sequential = Pipeline(jackson_recipe()).run(project)
        threaded = Pipeline(jackson_recipe(), max_workers=4).run(project)

        assert threaded.changed == sequential.changed
        assert threaded.accumulator.snapshot() == sequential.accumulator.snapshot()

    def test_broader_scope_parent_removes_test_dependency(self):
        """Test a compile-scope parent makes a test-scope duplicate redundant."""
        doc = maven("pom.xml", "app", {"compile": [jackson_tree()], "test": [node(CORE_17)]})

        result = Pipeline(jackson_recipe()).run([doc])

        assert artifacts(result.documents[0], "test") == []

    def test_narrower_scope_parent_keeps_compile_dependency(self):
        """Test a test-scope parent never removes a compile dependency."""
        doc = maven("pom.xml", "app", {"test": [jackson_tree()], "compile": [node(CORE_17)]})

        result = Pipeline(jackson_recipe()).run([doc])

        assert artifacts(result.documents[0], "compile") == ["jackson-core"]
        assert result.changed == []

    def test_scope_option_limits_removal(self):
        """Test only the requested scope is considered."""
        doc = maven("pom.xml", "app", {
            "compile": [jackson_tree(), node(CORE_17)],
            "test": [jackson_tree(), node(CORE_17)],
        })

        result = Pipeline(jackson_recipe(scope="Test")).run([doc])

        assert artifacts(result.documents[0], "compile") == ["jackson-databind", "jackson-core"]
        assert artifacts(result.documents[0], "test") == ["jackson-databind"]

    def test_scope_option_sees_parents_in_broader_scopes(self):
        """Test a compile-scope parent still removes a test duplicate when only test is requested."""
        doc = maven("pom.xml", "app", {"compile": [jackson_tree()], "test": [node(CORE_17)]})

        result = Pipeline(jackson_recipe(scope="test")).run([doc])

        assert artifacts(result.documents[0], "test") == []
        assert artifacts(result.documents[0], "compile") == ["jackson-databind"]
        assert [row.scope for row in result.reports.rows(RedundantDependencyRow)] == ["test"]

    def test_scope_option_ignores_parents_in_narrower_scopes(self):
        """Test a test-scope parent is not resolved when only compile is requested."""
        fetcher = StubFetcher(*JACKSON_POMS)
        doc = maven("pom.xml", "app", {"test": [jackson_tree()], "compile": [node(CORE_17)]})

        result = Pipeline(jackson_recipe(fetcher=fetcher, scope="compile")).run([doc])

        assert result.changed == []
        assert fetcher.calls == []

    def test_configuration_option_sees_broader_configurations(self):
        """Test an implementation parent removes a testImplementation duplicate."""
        doc = gradle("build.gradle", "app", {
            "implementation": [jackson_tree()],
            "testImplementation": [node(CORE_17)],
        })

        result = Pipeline(jackson_recipe(configuration="testImplementation")).run([doc])

        assert artifacts(result.documents[0], "testImplementation") == []

    def test_unresolvable_parent_removes_nothing(self):
        """Test an unknown closure never justifies a removal."""
        result = Pipeline(jackson_recipe(fetcher=StubFetcher())).run(jackson_project())

        assert result.changed == []
        assert artifacts(result.documents[0], "compile") == ["jackson-databind", "jackson-core"]

    def test_unresolved_document_is_skipped(self):
        """Test a document without resolution data is left alone."""
        doc = maven("pom.xml", "app", {"compile": [jackson_tree(), node(CORE_17)]}, resolved=False)

        result = Pipeline(jackson_recipe()).run([doc])

        assert result.changed == []

    def test_gradle_removes_from_every_configuration(self):
        """Test a Gradle duplicate is removed everywhere but reported once."""
        doc = gradle("build.gradle", "app", {
            "implementation": [jackson_tree(), node(CORE_17)],
            "runtimeClasspath": [jackson_tree(), node(CORE_17)],
        })

        result = Pipeline(jackson_recipe()).run([doc])

        assert artifacts(result.documents[0], "implementation") == ["jackson-databind"]
        assert artifacts(result.documents[0], "runtimeClasspath") == ["jackson-databind"]
        assert len(result.reports.rows(RedundantDependencyRow)) == 1

    @pytest.mark.parametrize("options", [
        {"scope": "banana"},
        {"scope": "system"},
        {"configuration": " "},
    ])
    def test_invalid_options_fail_before_scanning(self, options):
        """Test bad options raise before any metadata is fetched."""
        fetcher = StubFetcher(*JACKSON_POMS)

        with pytest.raises(ConfigurationError):
            Pipeline(jackson_recipe(fetcher, **options)).run(jackson_project())

        assert fetcher.calls == []

    def test_blank_pattern_rejected(self):
        """Test the parent patterns are required."""
        recipe = RemoveRedundantDependencies(" ", "jackson-databind", resolver=ClosureResolver(StubFetcher()))

        with pytest.raises(ConfigurationError):
            Pipeline(recipe).run(jackson_project())


class ExplodingRecipe(ScanningRecipe):
    """Fails while scanning one document and tries to merge during rewrite."""

    name = "exploding"

    def scanner(self, accumulator):

        class Scanner(DocumentVisitor[None]):
            def default(self, document):
                if document.path == "bad/pom.xml":
                    raise RuntimeError("boom")
                accumulator.merge_path("seen", document.path)

        return Scanner()

    def visitor(self, accumulator, reports):

        class Writer(DocumentVisitor):
            def default(self, document):
                accumulator.merge_path("late", document.path)
                return document

        return Writer()


class TestPipeline:
    """Tests for phase ordering and failure isolation."""

    def test_scan_failure_skips_document(self):
        """Test one failing document does not stop the run."""
        docs = [maven("bad/pom.xml", "bad"), maven("good/pom.xml", "good")]

        result = Pipeline(ExplodingRecipe()).run(docs)

        assert result.accumulator.paths["seen"] == {"good/pom.xml"}
        assert any("bad/pom.xml" in error for error in result.errors)

    def test_accumulator_frozen_during_rewrite(self):
        """Test merges after scanning fail and leave documents unchanged."""
        docs = [maven("good/pom.xml", "good")]

        result = Pipeline(ExplodingRecipe()).run(docs)

        assert result.documents[0] is docs[0]
        assert "late" not in result.accumulator.paths
        assert result.errors
        with pytest.raises(AccumulatorFrozenError):
            result.accumulator.merge_path("late", "x")

    def test_pipeline_runs_once(self):
        """Test a pipeline cannot be reused."""
        pipeline = Pipeline(ScanningRecipe())
        pipeline.run([])

        assert pipeline.phase is PipelinePhase.DONE
        with pytest.raises(PipelineStateError):
            pipeline.run([])

    def test_phases_in_order(self):
        """Test phases cannot be skipped."""
        pipeline = Pipeline(ScanningRecipe())

        with pytest.raises(PipelineStateError):
            pipeline._enter(PipelinePhase.REWRITE)

    def test_invalid_worker_count(self):
        """Test at least one worker is required."""
        with pytest.raises(ValueError):
            Pipeline(ScanningRecipe(), max_workers=0)

    def test_default_recipe_changes_nothing(self):
        """Test a recipe without hooks leaves every document alone."""
        docs = jackson_project()

        result = Pipeline(ScanningRecipe()).run(docs)

        assert result.changed == []
        assert result.generated == []
        assert result.all_documents == docs
