"""Knowledge bases and their bot assignments."""

from voicedesk.knowledge.linker import KnowledgeBaseLinker
from voicedesk.knowledge.service import KnowledgeBaseService

__all__ = ["KnowledgeBaseLinker", "KnowledgeBaseService"]
