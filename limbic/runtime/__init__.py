"""
Runtime Orchestration Module

WHAT: Runtime subsystem for emotional working memory and pattern consolidation
WHERE: limbic/runtime/ - orchestration layer above providers and vector stores
WHO: Cognitive agents turning sensory text into facts, patterns and moods
TIME: Ingestion dominated by provider latency; in-process memory ops are O(n)

Memory Architecture:
- working memory: bounded cache of the most salient recent facts
- sensory contexts: per-channel sliding windows of recent facts
- patterns: weighted clusters of similar facts in long-term memory
- emotional state: the bounded {joy, calm, anger, sadness} vector

Boundary Notes:
- Provider calls degrade to neutral values, never abort ingestion
- Store failures surface to the caller as StoreError
"""

__all__ = ["memory"]
