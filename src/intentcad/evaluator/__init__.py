"""
intentcad.evaluator

CadQuery-backed geometry evaluator. The CadQuery modules are imported
only inside the evaluator process (see intentcad.boundary.worker), except
by their own tests; `tessellate` and `graph` do not need CadQuery.
"""
