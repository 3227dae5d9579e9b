"""Pipeline Package - Orchestration and configuration"""

from .config import AnalysisConfig, load_config
from .analysis_pipeline import AnalysisPipeline

__all__ = ['AnalysisConfig', 'load_config', 'AnalysisPipeline']
