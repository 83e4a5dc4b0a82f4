"""Analyses that run through the scan, generate and rewrite pipeline."""

from .dependency_list import DependencyList, ListScope
from .diagnostic import DependencyResolutionDiagnostic
from .license_check import DependencyLicenseCheck, license_type
from .minimum_version import FindMinimumDependencyVersion
from .relocated import RelocatedDependencyCheck
from .remove_redundant import RemoveRedundantDependencies
from .sbom import SoftwareBillOfMaterials
from .vulnerabilities import FindVulnerableDependencies, Vulnerability, advisory_file_scanner

__all__ = [
    "DependencyLicenseCheck",
    "DependencyList",
    "DependencyResolutionDiagnostic",
    "FindMinimumDependencyVersion",
    "FindVulnerableDependencies",
    "ListScope",
    "RelocatedDependencyCheck",
    "RemoveRedundantDependencies",
    "SoftwareBillOfMaterials",
    "Vulnerability",
    "advisory_file_scanner",
    "license_type",
]
