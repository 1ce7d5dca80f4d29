"""
Circularity - deal-graph circularity analysis engine

Derives a directed multigraph from corporate deal records and quantifies
closed loops of value flow:
- Two-party loops (reciprocal flows between a pair of companies)
- Multi-party cycles of three to five companies
- Per-company hub scores across all detected structures
- Statistical significance against a degree-preserving null model
- Rank stability under alternative scoring weights
"""

__version__ = "0.1.0"
