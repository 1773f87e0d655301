"""Pipeline Package - Configuration and command line orchestration"""

from .config import PipelineConfig

__all__ = ['PipelineConfig']
