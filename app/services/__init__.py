# =============================================================================
# Services Package — Integrations and Infrastructure
# =============================================================================
#   - table_store.py: Statement table lookup (Postgres, in-memory)
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - events.py: Server-sent event encoding with size-bounded chunking
#   - companies.py: Known-company registry
# =============================================================================
