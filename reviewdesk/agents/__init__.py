from reviewdesk.agents.reconciliation_service import app as reconciliation_app

__all__ = ["reconciliation_app"]
