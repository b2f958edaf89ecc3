from ferry.persistence.state_store import MigrationStateStore

__all__ = ["MigrationStateStore"]
