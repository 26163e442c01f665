from .orchestrator import LoadTestOrchestrator, run_load_test
from .scheduler import PhaseScheduler, PhaseStep
from .sla import check_sla, identify_bottlenecks, recommend
from .workers import WorkerPool

__all__ = [
    "LoadTestOrchestrator",
    "PhaseScheduler",
    "PhaseStep",
    "WorkerPool",
    "check_sla",
    "identify_bottlenecks",
    "recommend",
    "run_load_test",
]
