"""
synthspine - Entity synthesis and relationship engine.

Turns a stream of monitoring events into a graph of typed, de-duplicated
entities and time-bounded relationships, driven by declarative YAML rules.

Packages:
- synthspine.core: Records, identity, durations, errors
- synthspine.rules: Rule YAML schema and versioned snapshots
- synthspine.engine: Matching, merging, relationships, expiration
- synthspine.observability: structlog logging and metrics
- synthspine.config: Settings
- synthspine.cli: ``synthspine`` command line
"""

__version__ = "0.1.0"

from synthspine.core.guid import generate_guid
from synthspine.core.models import Event
from synthspine.engine.engine import ProcessResult, SynthesisEngine
from synthspine.rules.snapshot import RuleSnapshot, SnapshotHolder, load_rules_dir

__all__ = [
    "__version__",
    "Event",
    "generate_guid",
    "SynthesisEngine",
    "ProcessResult",
    "RuleSnapshot",
    "SnapshotHolder",
    "load_rules_dir",
]
