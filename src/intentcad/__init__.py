"""
intentcad

Design-intent compilation and execution pipeline:

    workspace objects -> GeometryIR (content-addressed) -> evaluator
    structured intent -> operation sequence -> execution engine -> meshes
"""

__version__ = "0.1.0"
