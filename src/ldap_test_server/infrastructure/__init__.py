"""Infrastructure layer — external OpenLDAP tools, processes, files, sockets.

This layer depends on stdlib and third-party libs (cryptography).
It may import from domain, config.models and errors, never from builder,
connection or cli.
"""
