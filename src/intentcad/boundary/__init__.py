"""
intentcad.boundary

Message contract and process transport for the geometry evaluator.
"""
