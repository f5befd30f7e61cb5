"""Domain layer — include directives and template resolution.

Pure data and transforms. No subprocesses, no sockets.
"""
