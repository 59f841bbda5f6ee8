# =============================================================================
# Agents Package — Earnings Quality Orchestration
# =============================================================================
#   - requirements.py: question → analysis requirements (rules or LLM)
#   - planner.py: requirements → task graph, agent manifest, time estimate
#   - extraction.py: statement tables → named numeric fields
#   - calculation.py: accruals, CF/NI ratio, simplified Beneish M-Score
#   - assessment.py: sub-scores, grade, confidence, alerts, insights
#   - orchestrator.py: sequential task executor and the LangGraph pipeline
#     (analyse → plan → execute)
#   - types.py: shared task / plan / message types and agent registry
# =============================================================================
