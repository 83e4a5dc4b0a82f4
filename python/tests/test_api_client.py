"""Tests for the Maven repository client with mocked HTTP."""

from unittest.mock import Mock, patch

import pytest
import requests

from deptidy.api_client import (
    MavenRepositoryClient,
    MetadataFetchError,
    RepositoryUnreachableError,
    pom_path,
)
from deptidy.closure import ClosureResolver
from deptidy.config import Settings
from deptidy.models import Coordinate, Repository, ResolvedCoordinate

CENTRAL = Repository("central", "https://repo.maven.apache.org/maven2")
CORP = Repository("corp", "https://nexus.example.com/maven/")

PARENT_POM = b"""<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <groupId>com.example</groupId>
  <artifactId>parent</artifactId>
  <version>1.0</version>
  <packaging>pom</packaging>
  <properties>
    <jackson.version>2.17.0</jackson.version>
  </properties>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>org.slf4j</groupId>
        <artifactId>slf4j-api</artifactId>
        <version>2.0.13</version>
      </dependency>
      <dependency>
        <groupId>com.example</groupId>
        <artifactId>bom</artifactId>
        <version>3.0</version>
        <type>pom</type>
        <scope>import</scope>
      </dependency>
    </dependencies>
  </dependencyManagement>
  <licenses>
    <license><name>Apache License 2.0</name></license>
  </licenses>
</project>
"""

CHILD_POM = b"""<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <parent>
    <groupId>com.example</groupId>
    <artifactId>parent</artifactId>
    <version>1.0</version>
  </parent>
  <artifactId>child</artifactId>
  <dependencies>
    <dependency>
      <groupId>com.fasterxml.jackson.core</groupId>
      <artifactId>jackson-databind</artifactId>
      <version>${jackson.version}</version>
      <exclusions>
        <exclusion>
          <groupId>com.fasterxml.jackson.core</groupId>
          <artifactId>jackson-annotations</artifactId>
        </exclusion>
      </exclusions>
    </dependency>
    <dependency>
      <groupId>org.slf4j</groupId>
      <artifactId>slf4j-api</artifactId>
    </dependency>
    <dependency>
      <groupId>io.netty</groupId>
      <artifactId>netty-buffer</artifactId>
    </dependency>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
      <version>4.13.2</version>
      <scope>test</scope>
    </dependency>
    <dependency>
      <groupId>com.google.code.findbugs</groupId>
      <artifactId>jsr305</artifactId>
      <version>3.0.2</version>
      <optional>true</optional>
    </dependency>
  </dependencies>
</project>
"""

BOM_POM = b"""<?xml version="1.0" encoding="UTF-8"?>
<project>
  <groupId>com.example</groupId>
  <artifactId>bom</artifactId>
  <version>3.0</version>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>io.netty</groupId>
        <artifactId>netty-buffer</artifactId>
        <version>4.1.108.Final</version>
      </dependency>
      <dependency>
        <groupId>org.slf4j</groupId>
        <artifactId>slf4j-api</artifactId>
        <version>1.7.36</version>
      </dependency>
    </dependencies>
  </dependencyManagement>
</project>
"""

CHILD = ResolvedCoordinate("com.example", "child", "1.0")

PINNING_POM = b"""<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <groupId>com.example</groupId>
  <artifactId>pinning</artifactId>
  <version>1.0</version>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>org.example</groupId>
        <artifactId>lib</artifactId>
        <version>2.0</version>
      </dependency>
    </dependencies>
  </dependencyManagement>
  <dependencies>
    <dependency>
      <groupId>org.example</groupId>
      <artifactId>lib</artifactId>
      <version>1.0</version>
    </dependency>
  </dependencies>
</project>
"""

LIB_POM = b"""<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <groupId>org.example</groupId>
  <artifactId>lib</artifactId>
  <version>1.0</version>
</project>
"""


def make_session(responses):
    """Build a mock session answering GETs from a {url: (status, body)} map."""
    session = Mock()

    def get(url, timeout=None):
        status, body = responses.get(url, (404, b""))
        response = Mock()
        response.status_code = status
        response.content = body
        return response

    session.get.side_effect = get
    return session


def central_url(coordinate):
    return f"{CENTRAL.normalized_uri}/{pom_path(coordinate)}"


def served_by_central():
    return {
        central_url(CHILD): (200, CHILD_POM),
        central_url(ResolvedCoordinate("com.example", "parent", "1.0")): (200, PARENT_POM),
        central_url(ResolvedCoordinate("com.example", "bom", "3.0")): (200, BOM_POM),
    }


class TestMavenRepositoryClient:
    """Tests for MavenRepositoryClient."""

    def test_pom_path(self):
        """Test the Maven repository layout."""
        coordinate = ResolvedCoordinate("com.fasterxml.jackson.core", "jackson-core", "2.17.0")

        assert pom_path(coordinate) == (
            "com/fasterxml/jackson/core/jackson-core/2.17.0/jackson-core-2.17.0.pom"
        )

    def test_fetch_applies_parent_properties(self):
        """Test ${...} properties from the parent resolve child versions."""
        client = MavenRepositoryClient(session=make_session(served_by_central()))

        metadata = client.fetch(CHILD, [CENTRAL])

        databind = next(d for d in metadata.dependencies if d.artifact == "jackson-databind")
        assert databind.version == "2.17.0"
        assert databind.exclusions == {Coordinate("com.fasterxml.jackson.core", "jackson-annotations")}

    def test_fetch_parent_management_beats_bom(self):
        """Test versions managed directly win over an imported BOM."""
        client = MavenRepositoryClient(session=make_session(served_by_central()))

        metadata = client.fetch(CHILD, [CENTRAL])

        slf4j = next(d for d in metadata.dependencies if d.artifact == "slf4j-api")
        assert slf4j.version == "2.0.13"

    def test_fetch_bom_import_fills_missing_versions(self):
        """Test a BOM import supplies versions nothing else manages."""
        client = MavenRepositoryClient(session=make_session(served_by_central()))

        metadata = client.fetch(CHILD, [CENTRAL])

        netty = next(d for d in metadata.dependencies if d.artifact == "netty-buffer")
        assert netty.version == "4.1.108.Final"
        assert metadata.managed_versions[Coordinate("io.netty", "netty-buffer")] == "4.1.108.Final"

    def test_fetch_inherits_licenses_and_filters_scopes(self):
        """Test licenses come from the parent and compile view skips test and optional."""
        client = MavenRepositoryClient(session=make_session(served_by_central()))

        metadata = client.fetch(CHILD, [CENTRAL])

        assert metadata.licenses == ["Apache License 2.0"]
        compile_deps = {d.artifact for d in metadata.dependencies_in_scope("compile")}
        assert compile_deps == {"jackson-databind", "slf4j-api", "netty-buffer"}

    def test_fetch_is_cached(self):
        """Test each POM is downloaded once per client."""
        session = make_session(served_by_central())
        client = MavenRepositoryClient(session=session)

        client.fetch(CHILD, [CENTRAL])
        calls = session.get.call_count
        client.fetch(CHILD, [CENTRAL])

        assert session.get.call_count == calls

    def test_repositories_tried_in_order(self):
        """Test a later repository serves the POM when an earlier one lacks it."""
        session = make_session(served_by_central())
        client = MavenRepositoryClient(session=session)

        content = client.download_pom(CHILD, [CORP, CENTRAL])

        assert content == CHILD_POM
        first_url = session.get.call_args_list[0][0][0]
        assert first_url.startswith("https://nexus.example.com/maven/com/example/child")

    def test_missing_pom_raises(self):
        """Test a coordinate no repository has is a fetch error."""
        client = MavenRepositoryClient(session=make_session({}))

        with pytest.raises(MetadataFetchError) as excinfo:
            client.fetch(ResolvedCoordinate("g", "missing", "1.0"), [CENTRAL])

        assert "HTTP 404" in str(excinfo.value)

    def test_failures_are_remembered(self):
        """Test a failed coordinate is not requested again."""
        session = make_session({})
        client = MavenRepositoryClient(session=session)
        missing = ResolvedCoordinate("g", "missing", "1.0")

        with pytest.raises(MetadataFetchError):
            client.fetch(missing, [CENTRAL])
        with pytest.raises(MetadataFetchError):
            client.fetch(missing, [CENTRAL])

        assert session.get.call_count == 1

    def test_connection_error_is_fetch_error(self):
        """Test network failures surface as fetch errors."""
        session = Mock()
        session.get.side_effect = requests.ConnectionError("refused")
        client = MavenRepositoryClient(session=session)

        with pytest.raises(MetadataFetchError):
            client.download_pom(CHILD, [CENTRAL])

    def test_malformed_pom(self):
        """Test unparseable XML is a fetch error."""
        client = MavenRepositoryClient(session=make_session({central_url(CHILD): (200, b"<project")}))

        with pytest.raises(MetadataFetchError):
            client.fetch(CHILD, [CENTRAL])

    def test_no_repositories(self):
        """Test downloading with no repositories fails."""
        client = MavenRepositoryClient(session=Mock())

        with pytest.raises(MetadataFetchError):
            client.download_pom(CHILD, [])

    def test_local_repository(self, tmp_path):
        """Test file: repositories are read from disk."""
        target = tmp_path / pom_path(CHILD)
        target.parent.mkdir(parents=True)
        target.write_bytes(CHILD_POM)
        local = Repository("local", tmp_path.as_uri())
        client = MavenRepositoryClient(session=Mock())

        assert client.download_pom(CHILD, [local]) == CHILD_POM
        assert client.ping(local) == 200

    def test_explicit_version_resolved_from_local_repository(self, tmp_path):
        """Test a POM's explicit dependency version survives its own dependency management."""
        pinning = ResolvedCoordinate("com.example", "pinning", "1.0")
        lib = ResolvedCoordinate("org.example", "lib", "1.0")
        for coordinate, content in ((pinning, PINNING_POM), (lib, LIB_POM)):
            target = tmp_path / pom_path(coordinate)
            target.parent.mkdir(parents=True)
            target.write_bytes(content)
        local = Repository("local", tmp_path.as_uri())
        resolver = ClosureResolver(MavenRepositoryClient(session=Mock()))

        closure, ok = resolver.resolve(pinning, [local])

        assert ok
        assert closure[Coordinate("org.example", "lib")].version == "1.0"

    def test_ping_returns_status(self):
        """Test a reachable repository reports its status code."""
        session = Mock()
        session.head.return_value = Mock(status_code=200)
        client = MavenRepositoryClient(Settings(http_timeout=5), session=session)

        assert client.ping(CORP) == 200
        session.head.assert_called_once_with(
            "https://nexus.example.com/maven/", timeout=5, allow_redirects=True
        )

    def test_ping_unauthorized(self):
        """Test authentication failures raise RepositoryUnreachableError."""
        session = Mock()
        session.head.return_value = Mock(status_code=401)
        client = MavenRepositoryClient(session=session)

        with pytest.raises(RepositoryUnreachableError) as excinfo:
            client.ping(CORP)

        assert excinfo.value.status_code == 401

    @patch('deptidy.api_client.create_session')
    def test_default_session(self, mock_create_session):
        """Test the client builds its own session from settings."""
        mock_create_session.return_value = Mock()

        with MavenRepositoryClient(Settings(ca_bundle="/tmp/ca.pem")) as client:
            assert client.session is mock_create_session.return_value

        mock_create_session.assert_called_once_with(Settings().user_agent, "/tmp/ca.pem")
        mock_create_session.return_value.close.assert_called_once()
