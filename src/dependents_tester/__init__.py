"""Build and test every distribution that depends on your package."""

__version__ = "0.1.0"

# Export protocol interfaces for type hints and dependency injection
from dependents_tester.protocols import (
    CommandExecutor,
    DistributionRunner,
    OutputSink,
    PackageIndex,
    PrereqProbe,
)

__all__ = [
    "__version__",
    "CommandExecutor",
    "DistributionRunner",
    "OutputSink",
    "PackageIndex",
    "PrereqProbe",
]
