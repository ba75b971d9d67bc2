"""
Dashboard Package.

HTTP surface of the fleet service.

Modules:
- main: create_app()
- container: ServiceContainer wiring
- dependencies: FastAPI dependency helpers
- schemas: request/response models
- routers/: endpoint groups
"""
