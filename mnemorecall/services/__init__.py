"""
Services for mnemorecall.

High-level retrieval and memory services:
- DecayCalculator: Temporal decay of chunk relevance
- HybridScorer: Multi-signal ranking
- RelationshipGraph: Typed, weighted links between chunks
- CategoryManager: Category assignment and cached summaries
- EnhancedVectorStore: Decay-aware vector search
- ContextEnvironment: Working memory of one retrieval session
- RecursiveRetrievalController: Direct or iterative retrieval
- MaintenanceService: Decay recomputation, archival and summary refresh
"""

from mnemorecall.services.action_parser import parse_action
from mnemorecall.services.category_manager import (
    CategoryClassifier,
    CategoryManager,
    HeuristicCategoryClassifier,
    LLMCategoryClassifier,
)
from mnemorecall.services.context_environment import ContextEnvironment
from mnemorecall.services.decay_calculator import DecayCalculator
from mnemorecall.services.enhanced_vector_store import EnhancedVectorStore
from mnemorecall.services.hybrid_scorer import HybridScorer
from mnemorecall.services.maintenance import MaintenanceService
from mnemorecall.services.recursive_retrieval import (
    Continue,
    RecursiveRetrievalController,
    Terminate,
    assess_complexity,
)
from mnemorecall.services.relationship_graph import RelationshipGraph

__all__ = [
    "DecayCalculator",
    "HybridScorer",
    "RelationshipGraph",
    "CategoryManager",
    "CategoryClassifier",
    "HeuristicCategoryClassifier",
    "LLMCategoryClassifier",
    "EnhancedVectorStore",
    "ContextEnvironment",
    "RecursiveRetrievalController",
    "Continue",
    "Terminate",
    "assess_complexity",
    "parse_action",
    "MaintenanceService",
]
