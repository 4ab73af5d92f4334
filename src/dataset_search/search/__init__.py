"""
Dataset indexing and ranking package.

This package provides a pure-Python search stack:
- analyzers: Tokenizers and filters (lowercase, stoplist)
- schema: Dataset fields and schema definition
- documents: Building analyzed documents from dataset records
- storage: Index statistics store and JSON persistence
- stats: Dirichlet smoothing and BM25 helpers
- retriever: Disjunctive candidate retrieval
- fsdm: Fielded Sequential Dependence Model scorer
- profiles: Field weight profiles
- queries, runs: Query file and run file I/O
"""
