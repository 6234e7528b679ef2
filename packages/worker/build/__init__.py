from packages.worker.build.config import PipelineConfig, load_pipeline_config
from packages.worker.build.pipeline import PipelineResult, run_publish_pipeline

__all__ = [
    "PipelineConfig",
    "PipelineResult",
    "load_pipeline_config",
    "run_publish_pipeline",
]
