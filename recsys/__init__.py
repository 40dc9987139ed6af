"""
recsys: item-embedding recommendation core.

Layers (leaf-first):
- config: settings + ModelConfig codec
- data: interaction tables (read + load)
- store: DuckDB backend, VectorStore, model registry
- models: embedding policies + Trainer
- ranking: similarity + Ranker
- service: facade wiring everything from settings
"""
