"""
Graph analytics for the knowledge graph.

Feature extraction and hash vectors feed pairwise similarity; the
similarity engine and the per-query :class:`GraphIndex` back clustering,
metrics, connection suggestions and evolution.
"""
