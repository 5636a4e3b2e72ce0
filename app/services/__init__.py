from app.services.context_store import ContextStore
from app.services.document_assembler import DocumentAssembler
from app.services.enhancement_engine import EnhancementEngine
from app.services.section_synthesizer import SectionSynthesizer

__all__ = [
    "ContextStore",
    "DocumentAssembler",
    "EnhancementEngine",
    "SectionSynthesizer",
]
