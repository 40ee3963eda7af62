"""
FastAPI routers for the CSV autoloader API.
"""
