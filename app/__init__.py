# =============================================================================
# Earnings Quality Agent
# =============================================================================
# Answers questions about a company's earnings quality from its extracted
# financial statements. A master agent turns the question into analysis
# requirements, compiles them into a task plan, and specialist agents
# extract statement data, compute accrual / cash-flow / M-Score metrics
# and grade the result while progress streams to the client.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers (earnings-quality, companies)
#   ├── agents/       → Planning, task execution and the specialist agents
#   │                    (extraction, calculation, assessment)
#   ├── db/           → Database engine and ORM model for statement tables
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Table store, LLM providers, event stream encoding,
#                        company registry
# =============================================================================
