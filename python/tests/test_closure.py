"""Tests for closure flattening and transitive resolution."""

from builders import JACKSON_POMS as JACKSON, StubFetcher, dep, gav, pom
from deptidy.closure import ClosureResolver, flatten, glob_matches, with_maven_central
from deptidy.config import MAVEN_CENTRAL
from deptidy.models import Coordinate, DependencyNode, Repository


class TestFlatten:
    """Tests for flatten()."""

    def test_first_occurrence_wins(self):
        """Test one version per group:artifact, the first one found."""
        shared = DependencyNode(gav("g:shared:1.0"), depth=1)
        trees = [
            DependencyNode(gav("g:a:1.0"), children=(shared,)),
            DependencyNode(gav("g:b:1.0"), children=(DependencyNode(gav("g:shared:2.0"), depth=1),)),
        ]

        closure = flatten(trees)

        assert closure[Coordinate("g", "shared")] == gav("g:shared:1.0")
        assert len(closure) == 3
        assert closure.contains(gav("g:a:1.0"))
        assert not closure.contains(gav("g:shared:2.0"))

    def test_empty(self):
        """Test flattening nothing gives an empty closure."""
        assert len(flatten([])) == 0


class TestHelpers:
    """Tests for repository and pattern helpers."""

    def test_maven_central_appended(self):
        """Test Central is added when no repository points at it."""
        repos = [Repository("corp", "https://nexus.example.com/maven")]

        assert with_maven_central(repos) == repos + [MAVEN_CENTRAL]

    def test_maven_central_alias_not_duplicated(self):
        """Test a Central alias counts as Central."""
        repos = [Repository("central", "https://repo1.maven.org/maven2/")]

        assert with_maven_central(repos) == repos

    def test_glob_matches(self):
        """Test glob patterns and the match-all default."""
        assert glob_matches("com.fasterxml.jackson.core", "com.fasterxml.*")
        assert not glob_matches("org.slf4j", "com.*")
        assert glob_matches("anything", None)


class TestClosureResolver:
    """Tests for ClosureResolver."""

    def test_resolves_compile_closure(self):
        """Test the closure holds compile dependencies but not test ones."""
        resolver = ClosureResolver(StubFetcher(*JACKSON))

        closure, ok = resolver.resolve(gav("com.fasterxml.jackson.core:jackson-databind:2.17.0"), [])

        assert ok is True
        assert closure.resolved() == {
            gav("com.fasterxml.jackson.core:jackson-annotations:2.17.0"),
            gav("com.fasterxml.jackson.core:jackson-core:2.17.0"),
        }

    def test_maven_central_used_for_lookups(self):
        """Test lookups include Maven Central after the project's repositories."""
        fetcher = StubFetcher(*JACKSON)
        corp = Repository("corp", "https://nexus.example.com/maven")

        ClosureResolver(fetcher).resolve(gav("com.fasterxml.jackson.core:jackson-databind:2.17.0"), [corp])

        assert fetcher.calls[0][1] == [corp, MAVEN_CENTRAL]

    def test_root_failure_gives_unknown_closure(self):
        """Test an unresolvable root yields an empty closure and ok=False."""
        closure, ok = ClosureResolver(StubFetcher()).resolve(gav("g:missing:1.0"), [])

        assert ok is False
        assert len(closure) == 0

    def test_transitive_failure_is_a_leaf(self):
        """Test an unresolvable transitive is kept without children."""
        fetcher = StubFetcher(pom("g:root:1.0", dep("g:gone:1.0")))

        closure, ok = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert ok is True
        assert closure.resolved() == {gav("g:gone:1.0")}

    def test_cycle_terminates(self):
        """Test A -> B -> A resolves to a finite closure."""
        fetcher = StubFetcher(
            pom("g:a:1.0", dep("g:b:1.0")),
            pom("g:b:1.0", dep("g:a:1.0")),
        )

        closure, ok = ClosureResolver(fetcher).resolve(gav("g:a:1.0"), [])

        assert ok is True
        assert closure.resolved() == {gav("g:a:1.0"), gav("g:b:1.0")}

    def test_nearest_declaration_wins(self):
        """Test a shallower declaration beats a deeper one."""
        fetcher = StubFetcher(
            pom("g:root:1.0", dep("g:x:1.0"), dep("g:y:1.0")),
            pom("g:x:1.0"),
            pom("g:y:1.0", dep("g:x:2.0")),
        )

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert closure[Coordinate("g", "x")].version == "1.0"

    def test_exclusions_apply_below_declaration(self):
        """Test an excluded transitive is not followed."""
        fetcher = StubFetcher(
            pom("g:root:1.0", dep("g:x:1.0", exclusions=["g:z"])),
            pom("g:x:1.0", dep("g:z:1.0"), dep("g:w:1.0")),
            pom("g:w:1.0"),
        )

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert Coordinate("g", "z") not in closure
        assert Coordinate("g", "w") in closure

    def test_wildcard_exclusion(self):
        """Test a * exclusion drops every transitive below the declaration."""
        fetcher = StubFetcher(
            pom("g:root:1.0", dep("g:x:1.0", exclusions=["*:*"])),
            pom("g:x:1.0", dep("g:z:1.0")),
        )

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert closure.resolved() == {gav("g:x:1.0")}

    def test_optional_dependencies_skipped(self):
        """Test optional declarations are not part of the closure."""
        fetcher = StubFetcher(pom("g:root:1.0", dep("g:opt:1.0", optional=True)))

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert len(closure) == 0

    def test_root_managed_version_applies_transitively(self):
        """Test the root's dependency management pins transitive versions."""
        fetcher = StubFetcher(
            pom("g:root:1.0", dep("g:x:1.0"), managed={"g:z": "3.0"}),
            pom("g:x:1.0", dep("g:z:1.0")),
        )

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert closure[Coordinate("g", "z")].version == "3.0"

    def test_explicit_direct_version_beats_root_management(self):
        """Test a version written on the root's own declaration is kept over its management."""
        fetcher = StubFetcher(pom("g:root:1.0", dep("g:x:1.0"), managed={"g:x": "2.0"}))

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert closure[Coordinate("g", "x")].version == "1.0"

    def test_root_management_fills_missing_direct_version(self):
        """Test a direct declaration without a version takes the managed one."""
        fetcher = StubFetcher(pom("g:root:1.0", dep("g:x"), managed={"g:x": "2.0"}))

        closure, _ = ClosureResolver(fetcher).resolve(gav("g:root:1.0"), [])

        assert closure[Coordinate("g", "x")].version == "2.0"

    def test_max_depth(self):
        """Test resolution stops descending at the maximum depth."""
        fetcher = StubFetcher(
            pom("g:root:1.0", dep("g:a:1.0")),
            pom("g:a:1.0", dep("g:b:1.0")),
            pom("g:b:1.0", dep("g:c:1.0")),
        )

        closure, _ = ClosureResolver(fetcher, max_depth=2).resolve(gav("g:root:1.0"), [])

        assert closure.resolved() == {gav("g:a:1.0"), gav("g:b:1.0")}

    def test_resolve_tree_depths_and_licenses(self):
        """Test resolved trees carry depth and license data."""
        resolver = ClosureResolver(StubFetcher(*JACKSON))

        trees = resolver.resolve_tree(gav("com.fasterxml.jackson.core:jackson-databind:2.17.0"), [])

        core = next(t for t in trees if t.artifact == "jackson-core")
        assert core.depth == 0
        assert core.licenses == ("Apache License 2.0",)
