# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines request/response schemas for the API.
# These are SEPARATE from the database model (app/db/models.py) and from the
# agent-internal dataclasses (app/agents/types.py): the API contract uses
# snake_case envelopes while the event stream carries the agents' own
# camelCase task/plan payloads.
# =============================================================================
