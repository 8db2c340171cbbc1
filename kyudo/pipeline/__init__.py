"""Pipeline module for orchestrating a kyudo analysis session."""

from kyudo.pipeline.detection import DetectionGate
from kyudo.pipeline.orchestrator import AnalysisSession, SessionConfig, SessionStatus

__all__ = ["AnalysisSession", "DetectionGate", "SessionConfig", "SessionStatus"]
