"""deptidy - whole-project dependency analysis and rewriting for Maven and Gradle builds."""

__version__ = "1.0.0"
