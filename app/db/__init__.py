# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine and the ORM model for extracted
# statement tables.
#
# Key exports:
#   - async_session_factory: session factory used by the table store
#   - Base, FinancialTable: ORM base and the `tables` model
# =============================================================================
