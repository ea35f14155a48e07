"""
Application layer: use cases built on the domain ports.

- quota: daily free-tier LLM quota
- collection: literature fan-out, merging and ranking
- intake: PDF validation and storage
- analysis: extraction + judgment orchestration
"""
