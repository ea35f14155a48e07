"""
Infrastructure Layer - external service clients.

- sources: bibliographic source adapters
- extraction: Docling text extraction
- llm: LLM providers
- taxonomy: WoRMS synonym registry
"""
