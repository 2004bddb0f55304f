from certisure.agents.maintenance_service import app as maintenance_app

__all__ = ["maintenance_app"]
