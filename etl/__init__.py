"""
Transform-and-load stages for daily equity bars.

normalizer -> indicators -> quality -> loader, sequenced per symbol by
pipeline.PipelineOrchestrator.
"""

__version__ = "1.0.0"
