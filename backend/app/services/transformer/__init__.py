"""Goal-to-plan synthesis and conversational refinement engine."""
from app.services.transformer.engine import GenerationResult, TransformerEngine

__all__ = ["GenerationResult", "TransformerEngine"]
