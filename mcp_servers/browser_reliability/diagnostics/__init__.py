"""
Page diagnostics and failure analysis.

Provides:
- StructureAnalyzer: iframe/modal/element census + performance metrics
- ParallelAnalysisCoordinator: both passes concurrently with settle-all merge
- ElementDiscovery: alternatives for failed element lookups
- ErrorEnrichmentPipeline: attaches diagnostic context to failures
- DiagnosticOrchestrator: staged lifecycle + wrapped operations
"""

from .discovery import AlternativeElement, ElementDiscovery, SearchCriteria
from .enrichment import EnrichedError, ErrorEnrichmentPipeline, ExecutedStep, FailedStep
from .frames import FrameReferenceManager
from .initialization import InitStage, InitState, StagedInitializer
from .orchestrator import DiagnosticOrchestrator, OperationRecord, OperationResult
from .parallel import AnalysisError, AnalysisResult, ParallelAnalysisCoordinator
from .structure import PerformanceMetrics, StructureAnalyzer, StructureSnapshot

__all__ = [
    "AlternativeElement",
    "AnalysisError",
    "AnalysisResult",
    "DiagnosticOrchestrator",
    "ElementDiscovery",
    "EnrichedError",
    "ErrorEnrichmentPipeline",
    "ExecutedStep",
    "FailedStep",
    "FrameReferenceManager",
    "InitStage",
    "InitState",
    "OperationRecord",
    "OperationResult",
    "ParallelAnalysisCoordinator",
    "PerformanceMetrics",
    "SearchCriteria",
    "StagedInitializer",
    "StructureAnalyzer",
    "StructureSnapshot",
]
