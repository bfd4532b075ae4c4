"""
intentcad.api

HTTP surface: workspace compilation with undo/redo, intent sequencing
and background execution jobs with downloadable artifacts.
"""
