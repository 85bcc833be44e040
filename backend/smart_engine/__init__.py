"""
Task intelligence engine: dependency resolution plus explainable priority,
workload, estimation and duplicate scoring.

The engine modules are plain Python and never touch Django; only the
serializers, views and urls belong to the web layer.
"""
