"""
API Services Layer.

Direct database operations for API endpoints. One module per resource;
routes import them as ``from api.services import jobs as job_service``.
"""
