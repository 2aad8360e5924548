"""Infrastructure layer: record store, repository, secure paths, media files.

This layer depends on stdlib, the domain layer, and third-party libs
(Pillow, httpx). It must never import from services, commands, or output.
The service layer bridges between infrastructure and the outside world.
"""
